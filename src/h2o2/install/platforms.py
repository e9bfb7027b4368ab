"""Per-platform release artifact names."""

from __future__ import annotations

import platform
from functools import lru_cache

Platform = tuple[str, str]

_MACHINE_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv7l": "arm",
    "armv6l": "arm",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
}

# Node.js archive suffix, appended to ``node-v<version>``
NODEJS_ARCHIVES: dict[Platform, str] = {
    ("linux", "x86_64"): "-linux-x64.tar.gz",
    ("linux", "aarch64"): "-linux-arm64.tar.gz",
    ("linux", "arm"): "-linux-armv7l.tar.gz",
    ("darwin", "x86_64"): "-darwin-x64.tar.gz",
    ("darwin", "aarch64"): "-darwin-x64.tar.gz",
}

# path below the MinIO release root
MINIO_BINARIES: dict[Platform, str] = {
    ("windows", "x86_64"): "windows-amd64/minio.exe",
    ("linux", "x86_64"): "linux-amd64/minio",
    ("linux", "aarch64"): "linux-arm64/minio",
    ("darwin", "x86_64"): "darwin-amd64/minio",
    ("darwin", "aarch64"): "darwin-arm64/minio",
}

# go-judge executorserver asset suffix
SANDBOX_BINARIES: dict[Platform, str] = {
    ("windows", "x86_64"): "amd64.exe",
    ("linux", "x86_64"): "amd64",
    ("linux", "aarch64"): "arm64",
    ("darwin", "x86_64"): "macOS-amd64",
}


@lru_cache(maxsize=1)
def current_platform() -> Platform:
    system = platform.system().lower()
    machine = platform.machine().lower()
    return system, _MACHINE_ALIASES.get(machine, machine)


def is_windows(plat: Platform | None = None) -> bool:
    return (plat or current_platform())[0] == "windows"
