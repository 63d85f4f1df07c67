"""Browser identifiers derived from capture-service OS and browser names."""

from __future__ import annotations

import re

# The capture API reports e.g. "Win10-E17" for the OS that its browser list calls "Win10"
_OS_VERSION_SUFFIX_RE = re.compile(r"-E\d+$")
_NON_WORD_RE = re.compile(r"[^\w.]+")


def normalize_os_name(os_api_name: str) -> str:
    return _OS_VERSION_SUFFIX_RE.sub("", os_api_name)


def browser_file_name(os_api_name: str, browser_api_name: str) -> str:
    """Stable browser id, e.g. ("Win10-E17", "chrome") -> "win10_chrome"."""
    os_name = normalize_os_name(os_api_name)
    return _NON_WORD_RE.sub("", f"{os_name}_{browser_api_name}".lower())
