"""Reading version information of an installed application."""

from __future__ import annotations

import os
import plistlib
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from xml.parsers.expat import ExpatError

__all__ = ["AppInfo", "INFO_FILE", "read_plist_info", "load_app_info"]

INFO_FILE = "Info.plist"

_LEADING_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class AppInfo:
    """Version details of an application binary."""

    file_path: str
    company_name: str = ""
    file_description: str = ""
    version: int = 0
    full_version: str = ""
    legal_copyright: str = ""
    product_name: str = ""
    product_version: str = ""


def _plist_path_for(file_path: str) -> str:
    parts = file_path.split(os.sep)
    if len(parts) < 2:
        raise ValueError(f"path too short to locate {INFO_FILE}: {file_path!r}")
    kept = [part for part in parts[:-2] if part]
    return "/" + os.path.normpath(os.path.join(*kept, INFO_FILE))


def _string_value(data: dict, key: str) -> str:
    value = data.get(key, "")
    return value if isinstance(value, str) else ""


def read_plist_info(file_path: str) -> AppInfo:
    """Read version details from the bundle's Info.plist two levels above ``file_path``."""
    raw = Path(_plist_path_for(file_path)).read_bytes()
    try:
        data = plistlib.loads(raw)
    except (plistlib.InvalidFileException, ExpatError, ValueError) as exc:
        raise ValueError(f"invalid property list: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("property list does not hold a dictionary")

    full_version = _string_value(data, "CFBundleShortVersionString")
    major = full_version.split(".")[0]
    version = int(major) if _LEADING_INT_RE.fullmatch(major) else 0
    return AppInfo(
        file_path=file_path,
        full_version=full_version,
        version=version,
        company_name=_string_value(data, "NSHumanReadableCopyright"),
    )


def load_app_info(file_path: str) -> AppInfo:
    """Return what can be learned about the application at ``file_path`` on this platform."""
    if sys.platform == "darwin":
        return read_plist_info(file_path)
    return AppInfo(file_path=file_path)