import struct

import pytest

from relaunch.dldi import (
    DEVICE_TYPE_DLDI,
    DLDI_LOADER_MAGIC_STRING,
    DLDI_MAGIC_STRING,
    FIX_ALL,
    FIX_BSS,
    DldiPatchError,
    patch_binary,
    quick_find,
)

DRIVER_BASE = 0x1000
APP_MEMORY = 0x02000040
APP_OFFSET = 64
OUTSIDE_VALUE = 0x12345678


def make_driver(fix=0, shift=8, io_type=b"TEST"):
    header = bytearray(1 << shift)
    header[0:12] = DLDI_MAGIC_STRING
    header[0x0C] = 1
    header[0x0D] = shift
    header[0x0E] = fix
    header[0x0F] = shift
    header[0x10:0x14] = b"Test"
    struct.pack_into(
        "<8i",
        header,
        0x40,
        DRIVER_BASE,
        DRIVER_BASE + 0xC0,
        DRIVER_BASE + 0xC0,
        DRIVER_BASE + 0xC0,
        DRIVER_BASE + 0xC0,
        DRIVER_BASE + 0xC0,
        DRIVER_BASE + 0xE0,
        DRIVER_BASE + 0x100,
    )
    header[0x60:0x64] = io_type
    struct.pack_into("<I", header, 0x64, 0x23)
    struct.pack_into(
        "<6i",
        header,
        0x68,
        DRIVER_BASE + 0x80,
        DRIVER_BASE + 0x84,
        DRIVER_BASE + 0x88,
        DRIVER_BASE + 0x8C,
        DRIVER_BASE + 0x90,
        DRIVER_BASE + 0x94,
    )
    struct.pack_into("<i", header, 0x98, DRIVER_BASE + 0x84)
    struct.pack_into("<i", header, 0x9C, OUTSIDE_VALUE)
    header[0xE0:0x100] = b"\xaa" * 0x20
    return bytes(header)


def make_app(allocated=10, magic=DLDI_MAGIC_STRING, text_start=APP_MEMORY, startup=0):
    app = bytearray(1024)
    app[APP_OFFSET:APP_OFFSET + len(magic)] = magic
    app[APP_OFFSET + 0x0F] = allocated
    struct.pack_into("<i", app, APP_OFFSET + 0x40, text_start)
    struct.pack_into("<i", app, APP_OFFSET + 0x68, startup)
    return bytes(app)


def word(data, offset):
    return struct.unpack_from("<i", data, APP_OFFSET + offset)[0]


def test_quick_find_locates_aligned_magic():
    data = bytes(16) + DLDI_MAGIC_STRING + bytes(8)
    assert quick_find(data, DLDI_MAGIC_STRING) == 16


def test_quick_find_ignores_unaligned_magic():
    data = bytes(6) + DLDI_MAGIC_STRING + bytes(10)
    assert quick_find(data, DLDI_MAGIC_STRING) is None


def test_quick_find_stops_when_match_runs_past_end():
    data = bytes(8) + DLDI_MAGIC_STRING[:8]
    assert quick_find(data, DLDI_MAGIC_STRING) is None


def test_quick_find_distinguishes_loader_magic():
    data = bytes(8) + DLDI_LOADER_MAGIC_STRING + bytes(4)
    assert quick_find(data, DLDI_MAGIC_STRING) is None
    assert quick_find(data, DLDI_LOADER_MAGIC_STRING) == 8


def test_quick_find_rejects_short_search():
    with pytest.raises(ValueError):
        quick_find(bytes(16), b"ab")


def test_stub_device_type_constant_is_rejected():
    driver = make_driver(io_type=struct.pack("<I", DEVICE_TYPE_DLDI))
    with pytest.raises(DldiPatchError):
        patch_binary(make_app(), driver)


def test_header_pointers_are_relocated():
    patched = patch_binary(make_app(), make_driver())
    assert word(patched, 0x40) == APP_MEMORY
    assert word(patched, 0x44) == APP_MEMORY + 0xC0
    assert word(patched, 0x58) == APP_MEMORY + 0xE0
    assert word(patched, 0x5C) == APP_MEMORY + 0x100
    assert word(patched, 0x68) == APP_MEMORY + 0x80
    assert word(patched, 0x7C) == APP_MEMORY + 0x94


def test_zero_text_start_uses_startup_pointer():
    app = make_app(text_start=0, startup=APP_MEMORY + 0x80)
    patched = patch_binary(app, make_driver())
    assert word(patched, 0x40) == APP_MEMORY
    assert word(patched, 0x68) == APP_MEMORY + 0x80


def test_driver_is_copied_with_magic_and_allocated_space():
    driver = make_driver()
    patched = patch_binary(make_app(allocated=10), driver)
    assert patched[APP_OFFSET:APP_OFFSET + 12] == DLDI_MAGIC_STRING
    assert patched[APP_OFFSET + 0x0F] == 10
    assert patched[APP_OFFSET + 0x10:APP_OFFSET + 0x14] == b"Test"
    assert driver[0x0F] == 8


def test_input_binary_is_left_untouched():
    app = make_app()
    patch_binary(app, make_driver())
    assert app == make_app()


def test_fix_all_relocates_only_in_range_pointers():
    patched = patch_binary(make_app(), make_driver(fix=FIX_ALL))
    assert word(patched, 0x98) == APP_MEMORY + 0x84
    assert word(patched, 0x9C) == OUTSIDE_VALUE


def test_without_fix_all_code_pointers_stay():
    patched = patch_binary(make_app(), make_driver())
    assert word(patched, 0x98) == DRIVER_BASE + 0x84


def test_fix_bss_clears_bss():
    patched = patch_binary(make_app(), make_driver(fix=FIX_BSS))
    assert patched[APP_OFFSET + 0xE0:APP_OFFSET + 0x100] == bytes(0x20)


def test_bss_kept_when_clearing_disabled():
    patched = patch_binary(make_app(), make_driver(fix=FIX_BSS), clear_bss=False)
    assert patched[APP_OFFSET + 0xE0:APP_OFFSET + 0x100] == b"\xaa" * 0x20


def test_loader_magic_is_found_when_asked_for():
    app = make_app(magic=DLDI_LOADER_MAGIC_STRING)
    with pytest.raises(DldiPatchError):
        patch_binary(app, make_driver())
    patched = patch_binary(app, make_driver(), magic=DLDI_LOADER_MAGIC_STRING)
    assert word(patched, 0x40) == APP_MEMORY
    assert patched[APP_OFFSET:APP_OFFSET + 12] == DLDI_MAGIC_STRING


def test_missing_section_raises():
    with pytest.raises(DldiPatchError):
        patch_binary(bytes(1024), make_driver())


def test_stub_driver_raises():
    with pytest.raises(DldiPatchError):
        patch_binary(make_app(), make_driver(io_type=b"DLDI"))


def test_too_little_space_raises():
    with pytest.raises(DldiPatchError):
        patch_binary(make_app(allocated=7), make_driver(shift=8))


def test_short_driver_raises():
    with pytest.raises(DldiPatchError):
        patch_binary(make_app(), make_driver()[:0x40])