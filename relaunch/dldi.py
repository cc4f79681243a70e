"""Patching of DLDI disc drivers into binaries that reserve space for one."""

from __future__ import annotations

import struct
from typing import Optional

DLDI_MAGIC_STRING = b"\xed\xa5\x8d\xbf Chishm\x00"
"""Marks the reserved DLDI area of an ordinary binary."""

DLDI_LOADER_MAGIC_STRING = b"\xee\xa5\x8d\xbf Chishm\x00"
"""Marks the DLDI area of a loader, so that ordinary patchers skip it."""

DEVICE_TYPE_DLDI = 0x49444C44
"""I/O type of the empty stub driver: a binary with it has no real driver."""

FEATURE_MEDIUM_CANREAD = 0x00000001
FEATURE_MEDIUM_CANWRITE = 0x00000002
FEATURE_SLOT_GBA = 0x00000010
FEATURE_SLOT_NDS = 0x00000020

FIX_ALL = 0x01
FIX_GLUE = 0x02
FIX_GOT = 0x04
FIX_BSS = 0x08

_DRIVER_SIZE = 0x0D
_FIX_SECTIONS = 0x0E
_ALLOCATED_SPACE = 0x0F

_TEXT_START = 0x40
_DATA_END = 0x44
_GLUE_START = 0x48
_GLUE_END = 0x4C
_GOT_START = 0x50
_GOT_END = 0x54
_BSS_START = 0x58
_BSS_END = 0x5C

_IO_TYPE = 0x60
_STARTUP = 0x68
_IS_INSERTED = 0x6C
_READ_SECTORS = 0x70
_WRITE_SECTORS = 0x74
_CLEAR_STATUS = 0x78
_SHUTDOWN = 0x7C
_CODE = 0x80

_RELOCATED_FIELDS = (
    _TEXT_START,
    _DATA_END,
    _GLUE_START,
    _GLUE_END,
    _GOT_START,
    _GOT_END,
    _BSS_START,
    _BSS_END,
    _STARTUP,
    _IS_INSERTED,
    _READ_SECTORS,
    _WRITE_SECTORS,
    _CLEAR_STATUS,
    _SHUTDOWN,
)

_SECTION_FIXES = (
    (FIX_ALL, _TEXT_START, _DATA_END),
    (FIX_GLUE, _GLUE_START, _GLUE_END),
    (FIX_GOT, _GOT_START, _GOT_END),
)

_WORD = struct.Struct("<i")


class DldiPatchError(Exception):
    """Raised when a driver cannot be patched into a binary."""


def _wrap(value: int) -> int:
    """Reduce value to a signed 32-bit address."""
    return (value + 0x80000000) % 0x100000000 - 0x80000000


def _word_position(mem: bytearray, base: int, offset: int) -> int:
    if offset < 0:
        raise DldiPatchError(f"address offset {offset:#x} lies before the driver")
    position = base + (offset // _WORD.size) * _WORD.size
    if position + _WORD.size > len(mem):
        raise DldiPatchError(f"address offset {offset:#x} lies past the end")
    return position


def _read(mem: bytearray, base: int, offset: int) -> int:
    (value,) = _WORD.unpack_from(mem, _word_position(mem, base, offset))
    return value


def _write(mem: bytearray, base: int, offset: int, value: int) -> None:
    _WORD.pack_into(mem, _word_position(mem, base, offset), _wrap(value))


def quick_find(data: bytes, search: bytes) -> Optional[int]:
    """Return the word-aligned offset of search in data, or None.

    Only offsets that are multiples of four are tried. The search stops at
    the first aligned word that matches the start of search but leaves too
    little room for the rest of it.
    """
    if len(search) < 4:
        raise ValueError("search string must be at least four bytes long")
    head = bytes(search[:4])
    search = bytes(search)
    view = memoryview(data)
    for offset in range(0, len(data) // 4 * 4, 4):
        if view[offset:offset + 4] != head:
            continue
        if offset + len(search) > len(data):
            return None
        if view[offset:offset + len(search)] == search:
            return offset
    return None


def _relocate_range(
    mem: bytearray,
    base: int,
    start: int,
    end: int,
    low: int,
    high: int,
    relocation: int,
) -> None:
    # Each byte offset is visited, so a word is checked once per byte it holds.
    for offset in range(start, end):
        value = _read(mem, base, offset)
        if low <= value < high:
            _write(mem, base, offset, value + relocation)


def patch_binary(
    binary: bytes,
    driver: bytes,
    clear_bss: bool = True,
    magic: bytes = DLDI_MAGIC_STRING,
) -> bytes:
    """Return binary with driver copied into its reserved DLDI area.

    The area is found by magic. The driver's header pointers are moved to the
    address the area will have once the binary is loaded, and the sections
    its header asks for are fixed up; the BSS is cleared only if clear_bss.
    """
    out = bytearray(binary)
    header = bytearray(driver)
    if len(header) < _CODE:
        raise DldiPatchError("driver is too short to hold a DLDI header")

    base = quick_find(out, magic)
    if base is None:
        raise DldiPatchError("binary has no DLDI section")
    if base + _CODE > len(out):
        raise DldiPatchError("DLDI section of the binary is truncated")

    (io_type,) = struct.unpack_from("<I", header, _IO_TYPE)
    if io_type == DEVICE_TYPE_DLDI:
        raise DldiPatchError("driver is the empty stub driver")

    if header[_DRIVER_SIZE] > out[base + _ALLOCATED_SPACE]:
        raise DldiPatchError("not enough space reserved for the driver")

    driver_size = 1 << header[_DRIVER_SIZE]
    if len(header) < driver_size:
        raise DldiPatchError("driver is shorter than its header declares")
    if base + driver_size > len(out):
        raise DldiPatchError("driver does not fit in the binary")

    memory_offset = _read(out, base, _TEXT_START)
    if memory_offset == 0:
        memory_offset = _read(out, base, _STARTUP) - _CODE
    driver_start = _read(header, 0, _TEXT_START)
    relocation = _wrap(memory_offset - driver_start)
    driver_end = _wrap(driver_start + driver_size)

    header[_ALLOCATED_SPACE] = out[base + _ALLOCATED_SPACE]
    out[base:base + driver_size] = header[:driver_size]

    for field in _RELOCATED_FIELDS:
        _write(out, base, field, _read(out, base, field) + relocation)

    if magic == DLDI_MAGIC_STRING:
        out[base:base + len(DLDI_MAGIC_STRING)] = DLDI_MAGIC_STRING

    fix = header[_FIX_SECTIONS]
    for flag, start_field, end_field in _SECTION_FIXES:
        if fix & flag:
            _relocate_range(
                out,
                base,
                _read(header, 0, start_field) - driver_start,
                _read(header, 0, end_field) - driver_start,
                driver_start,
                driver_end,
                relocation,
            )

    if clear_bss and fix & FIX_BSS:
        bss_start = _read(header, 0, _BSS_START)
        length = _read(header, 0, _BSS_END) - bss_start
        if length > 0:
            start = base + bss_start - driver_start
            if start < base or start + length > len(out):
                raise DldiPatchError("driver BSS lies outside the binary")
            out[start:start + length] = bytes(length)

    return bytes(out)