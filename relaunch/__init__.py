"""Boot selection, INI settings, FAT boot-file lookup, DLDI patching and NDS header parsing."""

__version__ = "0.1.0"