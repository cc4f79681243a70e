[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "relaunch"
version = "0.1.0"
description = "Button-driven boot selection, INI settings, FAT boot-file lookup and DLDI patching for NDS homebrew images"
requires-python = ">=3.10"
dependencies = []
keywords = ["nds", "bootloader", "fat", "dldi", "ini", "launcher"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Boot",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
relaunch = "relaunch.launcher:main"

[tool.setuptools.packages.find]
include = ["relaunch*"]

[tool.pytest.ini_options]
addopts = "-ra"
