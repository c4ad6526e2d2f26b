"""Windows Performance Data Helper (PDH) counter provider via pywin32."""

from __future__ import annotations

import ctypes
import logging
from typing import Any

from ..errors import ProviderError, ProviderUnavailableError, Status
from .base import InstanceValue
from .provider import CounterProvider

logger = logging.getLogger(__name__)

ERROR_SUCCESS = 0x00000000
PDH_MORE_DATA = 0x800007D2
PDH_CSTATUS_NO_OBJECT = 0xC0000BB8
PDH_CSTATUS_NO_COUNTER = 0xC0000BB9
PDH_CSTATUS_BAD_COUNTERNAME = 0xC0000BC0
PDH_FMT_DOUBLE = 0x00000200

_BAD_NAME_CODES = {PDH_CSTATUS_BAD_COUNTERNAME, PDH_CSTATUS_NO_OBJECT, PDH_CSTATUS_NO_COUNTER}


class FmtCounterValue(ctypes.Structure):
    """``PDH_FMT_COUNTERVALUE`` with its value union read as a double."""

    _fields_ = [("CStatus", ctypes.c_uint32), ("doubleValue", ctypes.c_double)]


class FmtCounterValueItem(ctypes.Structure):
    """``PDH_FMT_COUNTERVALUE_ITEM_W``."""

    _fields_ = [("szName", ctypes.c_wchar_p), ("FmtValue", FmtCounterValue)]


def status_for_code(code: int) -> Status:
    """Map a native PDH status code onto a :class:`Status`."""
    code &= 0xFFFFFFFF
    if code == ERROR_SUCCESS:
        return Status.SUCCESS
    if code == PDH_MORE_DATA:
        return Status.MORE_DATA
    if code in _BAD_NAME_CODES:
        return Status.BAD_NAME
    return Status.FAILURE


def _error_code(exc: Exception) -> int | None:
    code = getattr(exc, "winerror", None)
    if code is None and exc.args and isinstance(exc.args[0], int):
        code = exc.args[0]
    return None if code is None else code & 0xFFFFFFFF


def _provider_error(action: str, exc: Exception) -> ProviderError:
    code = _error_code(exc)
    # an exception that carries no code, or ERROR_SUCCESS, is still a failure
    status = Status.FAILURE if not code else status_for_code(code)
    return ProviderError(status, f"{action}: {exc}", code)


def _load_pdh_library() -> Any:
    loader = getattr(ctypes, "WinDLL", None)
    if loader is None:
        raise ProviderUnavailableError("pdh.dll is only available on Windows")
    try:
        return loader("pdh.dll")
    except OSError as exc:
        raise ProviderUnavailableError(f"unable to load pdh.dll: {exc}") from exc


class PdhCounterProvider(CounterProvider):
    """Reads counters through ``win32pdh``.

    Counter paths are registered by their English names so they work on
    localized Windows installs. Values are formatted as doubles.

    pywin32's ``GetFormattedCounterArray`` folds the items into a dict, which
    loses instances that share a name (several ``svchost`` processes, for
    example). Arrays are therefore read by calling
    ``PdhGetFormattedCounterArrayW`` in pdh.dll directly, keeping every item
    in the order PDH enumerates them.
    """

    def __init__(self) -> None:
        self._pdh: Any = None
        self._library: Any = None
        self._error_type: Any = Exception

    @property
    def name(self) -> str:
        return "pdh"

    def _load(self) -> Any:
        if self._pdh is None:
            try:
                import pywintypes  # type: ignore[import-not-found]
                import win32pdh  # type: ignore[import-not-found]
            except ImportError as exc:
                raise ProviderUnavailableError("pywin32 is not installed, PDH counters are unavailable") from exc
            self._pdh = win32pdh
            self._error_type = pywintypes.error
            logger.debug("Loaded win32pdh for PDH counters")
        return self._pdh

    def _load_library(self) -> Any:
        if self._library is None:
            self._library = _load_pdh_library()
        return self._library

    def open_session(self) -> Any:
        pdh = self._load()
        try:
            return pdh.OpenQuery()
        except self._error_type as exc:
            raise _provider_error("PdhOpenQuery failed", exc) from exc

    def validate_path(self, session: Any, path: str) -> None:
        pdh = self._load()
        try:
            code = pdh.ValidatePath(path)
        except self._error_type as exc:
            raise _provider_error("PdhValidatePath failed", exc) from exc
        status = status_for_code(code or ERROR_SUCCESS)
        if status is not Status.SUCCESS:
            raise ProviderError(status, f"PdhValidatePath rejected {path!r}", code & 0xFFFFFFFF)

    def register_counter(self, session: Any, path: str) -> Any:
        pdh = self._load()
        add = getattr(pdh, "AddEnglishCounter", None)
        if add is None:
            logger.debug("AddEnglishCounter unavailable, registering %r with AddCounter", path)
            add = pdh.AddCounter
        try:
            return add(session, path)
        except self._error_type as exc:
            raise _provider_error(f"unable to add counter {path!r}", exc) from exc

    def collect(self, session: Any) -> None:
        pdh = self._load()
        try:
            pdh.CollectQueryData(session)
        except self._error_type as exc:
            raise _provider_error("PdhCollectQueryData failed", exc) from exc

    def read_formatted_array(self, counter: Any) -> list[InstanceValue]:
        get_array = self._load_library().PdhGetFormattedCounterArrayW
        handle = ctypes.c_void_p(int(counter))
        size = ctypes.c_uint32(0)
        count = ctypes.c_uint32(0)

        # First call sizes the buffer. Success here means there is nothing to fetch.
        code = get_array(handle, PDH_FMT_DOUBLE, ctypes.pointer(size), ctypes.pointer(count), None) & 0xFFFFFFFF
        if code == ERROR_SUCCESS:
            return []
        if code != PDH_MORE_DATA:
            raise ProviderError(status_for_code(code), "PdhGetFormattedCounterArrayW size query failed", code)

        # size covers the item array plus the instance name strings behind it
        buffer = ctypes.create_string_buffer(max(size.value, count.value * ctypes.sizeof(FmtCounterValueItem)))
        code = get_array(handle, PDH_FMT_DOUBLE, ctypes.pointer(size), ctypes.pointer(count), buffer) & 0xFFFFFFFF
        if code != ERROR_SUCCESS:
            raise ProviderError(status_for_code(code), "PdhGetFormattedCounterArrayW failed", code)

        items = ctypes.cast(buffer, ctypes.POINTER(FmtCounterValueItem))
        return [
            InstanceValue(items[i].szName or None, items[i].FmtValue.doubleValue)
            for i in range(count.value)
        ]

    def close_session(self, session: Any) -> None:
        pdh = self._load()
        try:
            pdh.CloseQuery(session)
        except self._error_type as exc:
            raise _provider_error("PdhCloseQuery failed", exc) from exc
