"""Version reporting for the chatlog package."""

from __future__ import annotations

import platform
import sys
from typing import Iterator

__all__ = ["VERSION", "get_more"]

VERSION = "(dev)"

_ARCH_NAMES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64",
               "i386": "386", "i686": "386", "x86": "386"}


def _os_name() -> str:
    if sys.platform == "win32":
        return "windows"
    return platform.system().lower() or sys.platform


def _arch_name() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine or "unknown")


def _build_info_lines() -> Iterator[str]:
    yield f"python\t{platform.python_version()}"
    yield "path\tchatlog"
    yield f"mod\tchatlog\t{VERSION}"
    yield f"build\tos={_os_name()}"
    yield f"build\tarch={_arch_name()}"


def get_more(mod: bool) -> str:
    """Describe the running version; with ``mod`` set, list build details instead."""
    if mod:
        info = "\n".join(_build_info_lines())
        if info:
            return "\t" + info.replace("\n", "\n\t") + "\n"
    return f"version {VERSION} python{platform.python_version()} {_os_name()}/{_arch_name()}\n"