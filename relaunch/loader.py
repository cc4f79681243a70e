"""Preparation of the command line handed to a launched program."""

from __future__ import annotations

import os
from typing import Iterable, Optional, Union

Argument = Union[str, bytes]


def _encode(argument: Argument) -> bytes:
    if isinstance(argument, str):
        encoded = argument.encode("utf-8", errors="surrogateescape")
    else:
        encoded = bytes(argument)
    if b"\0" in encoded:
        raise ValueError(f"argument {argument!r} contains a NUL byte")
    return encoded


def pack_arguments(args: Iterable[Argument]) -> tuple[bytes, int]:
    """Pack args into the loader's argument area.

    Each argument is stored followed by a NUL byte. The area is filled in
    16-bit words, so it is padded to an even length, and a further zero word
    closes it when the text already ends on a word boundary.

    Returns the bytes written to the area and the command-line length that
    the loader records, which counts every argument's terminating NUL.
    """
    text = b"".join(_encode(argument) + b"\0" for argument in args)
    padding = 1 if len(text) % 2 else 2
    return text + bytes(padding), len(text)


def build_command_line(filename: str, cwd: Optional[str] = None) -> list[str]:
    """Return the argument list used when a program is started without one.

    The single argument is the working directory with filename appended
    directly to it, so an absolute filename should start with a slash.
    When cwd is not given the current working directory is used.
    """
    if cwd is None:
        cwd = os.getcwd()
    return [cwd + filename]