"""Choice of the program to start from the buttons held at power-on."""

from __future__ import annotations

import argparse
import enum
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from relaunch.inifile import IniFile

SECTION = "RELAUNCH"
CONFIG_PATH = "_nds/Relaunch/Relaunch.ini"
MENU_PATH = "_nds/Relaunch/menu.bin"


class Button(enum.IntFlag):
    """Key bits as reported by the input registers."""

    A = 1 << 0
    B = 1 << 1
    SELECT = 1 << 2
    START = 1 << 3
    RIGHT = 1 << 4
    LEFT = 1 << 5
    UP = 1 << 6
    DOWN = 1 << 7
    R = 1 << 8
    L = 1 << 9
    X = 1 << 10
    Y = 1 << 11
    TOUCH = 1 << 12


# Field name, ini key and default, in the order the ini file lists them.
_ENTRIES = (
    ("a", "BOOT_A_PATH", "/_nds/Relaunch/extras/bootA.nds"),
    ("b", "BOOT_B_PATH", "/_nds/Relaunch/extras/bootB.nds"),
    ("x", "BOOT_X_PATH", "/_nds/Relaunch/extras/bootX.nds"),
    ("y", "BOOT_Y_PATH", "/_nds/Relaunch/extras/bootY.nds"),
    ("r", "BOOT_R_PATH", "/_nds/Relaunch/extras/bootR.nds"),
    ("l", "BOOT_L_PATH", "/_nds/Relaunch/extras/bootL.nds"),
    ("down", "BOOT_DOWN_PATH", "/_nds/Relaunch/extras/bootDown.nds"),
    ("up", "BOOT_UP_PATH", "/_nds/Relaunch/extras/bootUp.nds"),
    ("left", "BOOT_LEFT_PATH", "/_nds/Relaunch/extras/bootLeft.nds"),
    ("right", "BOOT_RIGHT_PATH", "/_nds/Relaunch/extras/bootRight.nds"),
    ("start", "BOOT_START_PATH", "/_nds/Relaunch/extras/bootStart.nds"),
    ("select", "BOOT_SELECT_PATH", "/_nds/Relaunch/extras/bootSelect.nds"),
    ("touch", "BOOT_TOUCH_PATH", "/_nds/Relaunch/extras/bootTouch.nds"),
    ("default", "BOOT_DEFAULT_PATH", "/boot.nds"),
)
_DEFAULTS = {field: default for field, _key, default in _ENTRIES}

_MENU_COMBOS = (Button.A | Button.B, Button.A | Button.X)

# Single buttons, highest priority first.
_PRIORITY = (
    (Button.A, "a"),
    (Button.B, "b"),
    (Button.X, "x"),
    (Button.Y, "y"),
    (Button.R, "r"),
    (Button.L, "l"),
    (Button.RIGHT, "right"),
    (Button.LEFT, "left"),
    (Button.DOWN, "down"),
    (Button.UP, "up"),
    (Button.START, "start"),
    (Button.SELECT, "select"),
    (Button.TOUCH, "touch"),
)


@dataclass(frozen=True)
class LaunchConfig:
    """The program path bound to each button, and the one used otherwise."""

    a: str = _DEFAULTS["a"]
    b: str = _DEFAULTS["b"]
    x: str = _DEFAULTS["x"]
    y: str = _DEFAULTS["y"]
    r: str = _DEFAULTS["r"]
    l: str = _DEFAULTS["l"]  # noqa: E741
    down: str = _DEFAULTS["down"]
    up: str = _DEFAULTS["up"]
    left: str = _DEFAULTS["left"]
    right: str = _DEFAULTS["right"]
    start: str = _DEFAULTS["start"]
    select: str = _DEFAULTS["select"]
    touch: str = _DEFAULTS["touch"]
    default: str = _DEFAULTS["default"]


def load_config(path: Union[str, Path]) -> LaunchConfig:
    """Read the configuration, filling in and saving any missing paths.

    The directory holding the file and its extras directory are created.
    """
    path = Path(path)
    ini = IniFile(path)
    values = {
        field: ini.get_string(SECTION, key, default)
        for field, key, default in _ENTRIES
    }
    for field, key, _default in _ENTRIES:
        ini.set_string(SECTION, key, values[field])

    path.parent.mkdir(parents=True, exist_ok=True)
    (path.parent / "extras").mkdir(exist_ok=True)
    ini.save(path)
    return LaunchConfig(**values)


def choose_target(config: LaunchConfig, pressed: Union[int, Button]) -> str:
    """Return the path to start for the held buttons.

    A with B, or A with X, opens the menu; otherwise the first held button in
    priority order picks its path, and with none held the default is used.
    """
    pressed = Button(pressed)
    for combo in _MENU_COMBOS:
        if pressed & combo == combo:
            return MENU_PATH
    for button, field in _PRIORITY:
        if pressed & button:
            return getattr(config, field)
    return config.default


def _resolve(root: Path, target: str) -> Path:
    return root / target.lstrip("/")


def _parse_buttons(names: Sequence[str]) -> Button:
    pressed = Button(0)
    for name in names:
        try:
            pressed |= Button[name.upper()]
        except KeyError:
            raise argparse.ArgumentTypeError(f"unknown button {name!r}") from None
    return pressed


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Pick the program to start from a card root and the held buttons."""
    parser = argparse.ArgumentParser(
        prog="relaunch",
        description="Choose the program to start for the buttons held.",
    )
    parser.add_argument("--root", default=".", help="root directory of the card")
    parser.add_argument(
        "--keys",
        nargs="*",
        default=[],
        metavar="BUTTON",
        help="buttons held: " + ", ".join(b.name.lower() for b in Button),
    )
    options = parser.parse_args(argv)

    try:
        pressed = _parse_buttons(options.keys)
    except argparse.ArgumentTypeError as error:
        parser.error(str(error))

    root = Path(options.root)
    if not root.is_dir():
        print("fatInitDefault failed!", file=sys.stderr)
        return 1

    config = load_config(root / CONFIG_PATH)
    target = choose_target(config, pressed)
    location = _resolve(root, target)

    if not location.exists():
        if target == MENU_PATH:
            print("Error:\nmenu.bin wasn't found!", file=sys.stderr)
        else:
            print(f"oof: {target} not found", file=sys.stderr)
        return 1

    print(location)
    return 0


if __name__ == "__main__":
    sys.exit(main())