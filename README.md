# relaunch

Tools for choosing and preparing an NDS homebrew program to boot, based on
which buttons are held at start-up.

## Modules

- `relaunch.inifile.IniFile` is a small INI reader and writer that keeps
  the file as a list of lines. Comment lines (starting with `;`, `/` or `!`)
  and blank lines are dropped when a file is loaded.
  `get_string` and `get_int` store their default when the key is missing.
  `set_string`, `set_int` and `set_string_list` mark the file as modified.
  `save` writes lines ending in CRLF and puts a blank line before each
  section. `save_if_modified` writes the file only if something changed.
- `relaunch.fat` gives read-only access to FAT12, FAT16 and FAT32 volumes.
  `ImageDevice` holds a disc image in memory. `FatVolume` reads the boot
  sector, or the first usable partition of a master boot record, and
  provides these methods:
  - `next_cluster` follows a cluster chain.
  - `cluster_to_sector` converts a cluster number to a sector number.
  - `find_boot_file` finds an 8.3 file in the root directory and returns
    `CLUSTER_FREE` if there is none.
  - `read` reads bytes from a cluster chain.
  - `read_file` combines the lookup and the read.

  Errors are raised as `FatError`.
- `relaunch.dldi` has two functions. `quick_find` searches for a byte
  string at word-aligned offsets. `patch_binary` copies a DLDI driver into
  the area a binary reserves for one and relocates the driver's pointers.
  It clears the driver's BSS if asked to. It raises `DldiPatchError` when
  the binary cannot be patched.
- `relaunch.loader` has two functions. `pack_arguments` lays out
  NUL-terminated arguments as the loader's argument area and returns the
  area together with its recorded length. `build_command_line` builds the
  default argument list from the working directory and a file name.
- `relaunch.ndsheader.NdsHeader` parses the layout fields of an NDS
  header. Its `argument_address` method gives the address the command line
  is copied to. Its `needs_pictochat_fix` method tells whether the title is
  one that needs the wireless channel fix.
- `relaunch.launcher` contains the following:
  - `Button` holds the key bits.
  - `LaunchConfig` holds the path bound to each button.
  - `load_config` reads the configuration, then writes it back with any
    missing entries filled in.
  - `choose_target` picks a path for the held buttons.
  - `main` is the command entry point.

## Installation

```
pip install .
```

## Configuration

Boot paths are read from the `[RELAUNCH]` section of an INI file. The keys
are:

- `BOOT_A_PATH`, `BOOT_B_PATH`, `BOOT_X_PATH`, `BOOT_Y_PATH`
- `BOOT_R_PATH`, `BOOT_L_PATH`
- `BOOT_DOWN_PATH`, `BOOT_UP_PATH`, `BOOT_LEFT_PATH`, `BOOT_RIGHT_PATH`
- `BOOT_START_PATH`, `BOOT_SELECT_PATH`, `BOOT_TOUCH_PATH`
- `BOOT_DEFAULT_PATH`

A missing key gets a default value. For a button key the default is
`/_nds/Relaunch/extras/boot<Button>.nds`. For `BOOT_DEFAULT_PATH` it is
`/boot.nds`. `load_config` saves the file and creates its directory and an
`extras` directory next to it.

Holding A+B or A+X selects the menu, `_nds/Relaunch/menu.bin`. Otherwise
the first held button wins, in this order: A, B, X, Y, R, L, Right, Left,
Down, Up, Start, Select, Touch. If no button is held, the default path is
used.

## Library use

```python
from relaunch.launcher import Button, load_config, choose_target

config = load_config("_nds/Relaunch/Relaunch.ini")
target = choose_target(config, Button.A | Button.START)
print(target)  # the path bound to A
```

## Command line

```
relaunch --root /path/to/card --keys a
```

- `--root` is the directory that stands for the card. It defaults to the
  current directory.
- `--keys` takes the names of the held buttons, for example `a`, `start` or
  `touch`.

The command loads `_nds/Relaunch/Relaunch.ini` under the root, adding any
missing entries. It then works out which program the buttons select. If
that file exists under the root, the command prints its path and exits
with status 0. If the file does not exist, or the root is not a directory,
it prints an error to standard error and exits with status 1.

## What it does not do

The package does not start the chosen program. It does not load program
binaries into memory or talk to any console hardware. The command only
reports which file would be booted. The FAT support is read-only and works
on disc images held in memory.