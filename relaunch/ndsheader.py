"""Parsing of the fields of an NDS cartridge header that the boot loader uses."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

HEADER_SIZE = 0x170
"""Number of header bytes the loader copies into memory."""

TWL_HEADER_SIZE = 0x1000
"""Size of the extended DSi header."""

PICTOCHAT_TITLE_IDS = (0x41444E48, 0x41454E48)
"""Title ids of programs that need the wireless channel fix."""

_U32 = 0xFFFFFFFF
_UNIT_CODE = 0x12
_TWL_BINARIES_FLAG = 0x02
_TWL_ARM9I = 0x1C8
_TWL_MINIMUM = 0x1D0


def _align_word(address: int) -> int:
    return ((address + 3) & ~3) & _U32


@dataclass(frozen=True)
class NdsHeader:
    """The binary layout fields of an NDS header."""

    title_id: int
    unit_code: int
    arm9_rom_offset: int
    arm9_entry_address: int
    arm9_load_address: int
    arm9_size: int
    arm7_rom_offset: int
    arm7_entry_address: int
    arm7_load_address: int
    arm7_size: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "NdsHeader":
        """Parse the first HEADER_SIZE bytes of a program image."""
        if len(data) < HEADER_SIZE:
            raise ValueError(
                f"header needs {HEADER_SIZE} bytes, got {len(data)}"
            )
        (title_id,) = struct.unpack_from("<I", data, 0x0C)
        arm9 = struct.unpack_from("<4I", data, 0x20)
        arm7 = struct.unpack_from("<4I", data, 0x30)
        return cls(title_id, data[_UNIT_CODE], *arm9, *arm7)

    @property
    def game_code(self) -> str:
        """The four-character game code the title id is made of."""
        return self.title_id.to_bytes(4, "little").decode("latin-1")

    @property
    def has_twl_binaries(self) -> bool:
        """True when the program carries extra DSi binaries."""
        return bool(self.unit_code & _TWL_BINARIES_FLAG)

    def argument_address(
        self, twl_header: Optional[bytes] = None, dsi_mode: bool = False
    ) -> int:
        """Return the word-aligned address the command line is copied to.

        It lies just after the ARM9 binary (the ARM7 binary if the ARM9 has no
        load address and size), or after the DSi ARM9 binary when running in
        DSi mode and that one ends further up.
        """
        destination, length = self.arm9_load_address, self.arm9_size
        if destination == 0 and length == 0:
            destination, length = self.arm7_load_address, self.arm7_size
        address = _align_word(destination + length)

        if dsi_mode and self.has_twl_binaries:
            if twl_header is None:
                raise ValueError("a DSi header is needed for this program")
            if len(twl_header) < _TWL_MINIMUM:
                raise ValueError("DSi header is truncated")
            twl_destination, twl_length = struct.unpack_from(
                "<II", twl_header, _TWL_ARM9I
            )
            if twl_length:
                address = max(address, _align_word(twl_destination + twl_length))
        return address

    def needs_pictochat_fix(self) -> bool:
        """True for the programs that need the wireless channel list set."""
        return self.title_id in PICTOCHAT_TITLE_IDS