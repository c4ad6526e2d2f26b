"""Provider selection."""

from __future__ import annotations

import sys

from .provider import CounterProvider

PROVIDERS = ("auto", "pdh", "psutil")


def current_platform() -> str:
    return "windows" if sys.platform.startswith("win") else "posix"


def build_provider(name: str = "auto") -> CounterProvider:
    """Return the counter provider called *name*.

    ``auto`` picks PDH on Windows and psutil everywhere else.
    """
    key = name.strip().lower()
    if key == "auto":
        key = "pdh" if current_platform() == "windows" else "psutil"
    if key == "pdh":
        from .pdh import PdhCounterProvider

        return PdhCounterProvider()
    if key == "psutil":
        from .psutil_provider import PsutilCounterProvider

        return PsutilCounterProvider()
    raise ValueError(f"unknown provider {name!r}, expected one of {', '.join(PROVIDERS)}")
