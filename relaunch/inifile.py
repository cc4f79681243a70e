"""Line-preserving INI file reader and writer."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Optional, Union

PathLike = Union[str, Path]

_BOM = b"\xef\xbb\xbf"
_COMMENT_PREFIXES = (";", "/", "!")
_BLANKS = " \t"
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1

_DECIMAL = re.compile(r"[ \t\n\v\f\r]*([+-]?)([0-9]+)")
_HEXADECIMAL = re.compile(r"[ \t\n\v\f\r]*([+-]?)(?:0[xX])?([0-9a-fA-F]+)")


def _parse_long(text: str, hexadecimal: bool) -> int:
    """Parse a leading integer the way strtol does, clamped to 32 bits."""
    pattern = _HEXADECIMAL if hexadecimal else _DECIMAL
    match = pattern.match(text)
    if match is None:
        return 0
    sign, digits = match.groups()
    value = int(digits, 16 if hexadecimal else 10)
    if sign == "-":
        value = -value
    return max(_INT_MIN, min(_INT_MAX, value))


def _split_lines(raw: bytes) -> Iterable[str]:
    """Yield the non-empty lines of raw, split on CR or LF."""
    text = raw.decode("utf-8", errors="surrogateescape")
    for piece in re.split(r"[\r\n]", text):
        if piece:
            yield piece


def _section_name(line: str) -> Optional[str]:
    if not line.startswith("["):
        return None
    close = line.find("]")
    if close <= 0:
        return None
    return line[1:close]


def _split_entry(line: str) -> Optional[tuple[str, str]]:
    """Split 'key = value' into its trimmed key and value, or None."""
    equals = line.find("=")
    if equals < 0:
        return None
    key = line[:equals].rstrip(_BLANKS)
    value = line[equals + 1:].lstrip(_BLANKS)
    return key, value


class IniFile:
    """An INI file kept as its list of meaningful lines.

    Comments and blank lines are dropped on load; lookups scan the first
    section with a matching name, and edits replace or insert single lines.
    """

    def __init__(self, filename: Optional[PathLike] = None) -> None:
        self.filename: Optional[str] = None
        self._lines: list[str] = []
        self._modified = False
        if filename is not None:
            try:
                self.load(filename)
            except OSError:
                pass

    @property
    def modified(self) -> bool:
        """True when values were changed since the last load or save."""
        return self._modified

    @property
    def lines(self) -> list[str]:
        """A copy of the stored lines."""
        return list(self._lines)

    def load(self, filename: PathLike) -> None:
        """Read filename, replacing the current contents."""
        name = str(filename)
        if name:
            self.filename = name
        with open(name, "rb") as handle:
            raw = handle.read()
        if raw.startswith(_BOM):
            raw = raw[len(_BOM):]
        lines = []
        for line in _split_lines(raw):
            line = line.strip(_BLANKS)
            if line and not line.startswith(_COMMENT_PREFIXES):
                lines.append(line)
        self._lines = lines
        self._modified = False

    def save(self, filename: Optional[PathLike] = None) -> None:
        """Write the lines with CRLF endings and a blank line between sections."""
        if filename is not None and str(filename):
            self.filename = str(filename)
        if not self.filename:
            raise ValueError("no file name to save to")
        with open(self.filename, "wb") as handle:
            for index, line in enumerate(self._lines):
                line = line.lstrip(" ")
                self._lines[index] = line
                if line.startswith("[") and index > 0 and self._lines[index - 1]:
                    handle.write(b"\r\n")
                if line:
                    handle.write(line.encode("utf-8", errors="surrogateescape"))
                    handle.write(b"\r\n")
        self._modified = False

    def save_if_modified(self, filename: Optional[PathLike] = None) -> bool:
        """Save only if something changed; return whether a save happened."""
        if not self._modified:
            return False
        self.save(filename)
        return True

    def _lookup(self, section: str, item: str) -> Optional[str]:
        for index, line in enumerate(self._lines):
            if _section_name(line) != section:
                continue
            for entry_line in self._lines[index + 1:]:
                entry = _split_entry(entry_line)
                if entry is not None:
                    key, value = entry
                    if key == item:
                        return value
                elif entry_line.startswith("["):
                    break
            return None
        return None

    def _store(self, section: str, item: str, value: str) -> None:
        entry_text = f"{item} = {value}"
        for index, line in enumerate(self._lines):
            if _section_name(line) != section:
                continue
            position = index + 1
            while position < len(self._lines):
                entry_line = self._lines[position]
                entry = _split_entry(entry_line)
                if entry is not None:
                    if entry[0] == item:
                        self._lines[position] = entry_text
                        return
                elif entry_line.startswith("["):
                    self._lines.insert(position, entry_text)
                    return
                position += 1
            self._lines.append(entry_text)
            return
        self._lines.append(f"[{section}]")
        self._lines.append(entry_text)

    def get_string(self, section: str, item: str, default: Optional[str] = None) -> str:
        """Return the value of item, or store and return default when missing.

        Without a default a missing item reads as the empty string.
        """
        value = self._lookup(section, item)
        if value is not None:
            return value
        if default is None:
            return ""
        self.set_string(section, item, default)
        return default

    def set_string(self, section: str, item: str, value: str) -> None:
        """Set item to value, marking the file modified if it changed."""
        current = self._lookup(section, item)
        if (current if current is not None else "") != value:
            self._store(section, item, value)
            self._modified = True

    def get_int(self, section: str, item: str, default: Optional[int] = None) -> int:
        """Return item as an integer; '0x' values are read as hexadecimal."""
        value = self._lookup(section, item)
        if value is None:
            if default is None:
                return 0
            self.set_int(section, item, default)
            return default
        hexadecimal = len(value) > 2 and value[0] == "0" and value[1] in "xX"
        return _parse_long(value, hexadecimal)

    def set_int(self, section: str, item: str, value: int) -> None:
        """Set item to the decimal text of value."""
        self.set_string(section, item, str(value))

    def get_string_list(self, section: str, item: str, delimiter: str = ",") -> list[str]:
        """Split the value of item on delimiter, dropping empty pieces."""
        value = self._lookup(section, item) or ""
        return [piece for piece in value.split(delimiter) if piece]

    def set_string_list(
        self, section: str, item: str, strings: Iterable[str], delimiter: str = ","
    ) -> None:
        """Join strings with delimiter and store them under item."""
        self.set_string(section, item, delimiter.join(strings))