"""Exception hierarchy for perf_poller."""

from __future__ import annotations

import enum


class Status(enum.Enum):
    """Outcome reported by a counter provider."""

    SUCCESS = "success"
    BAD_NAME = "bad_name"
    MORE_DATA = "more_data"
    FAILURE = "failure"


class PerfPollerError(Exception):
    """Base class for all perf_poller errors."""


class ProviderError(PerfPollerError):
    """A counter provider call did not succeed.

    *code* is the provider's native status code when it has one; it is kept
    for diagnostics only and never interpreted outside the provider.
    """

    def __init__(self, status: Status, message: str = "", code: int | None = None) -> None:
        self.status = status
        self.code = code
        if not message:
            message = status.value
        if code is not None:
            message = f"{message} (status 0x{code & 0xFFFFFFFF:08x})"
        super().__init__(message)


class ProviderUnavailableError(ProviderError):
    """The library backing a provider cannot be loaded on this host."""

    def __init__(self, message: str) -> None:
        super().__init__(Status.FAILURE, message)


class SetupError(PerfPollerError):
    """Collection could not be started."""

    def __init__(self, message: str, code: int | None = None) -> None:
        self.code = code
        super().__init__(message)


class SessionOpenError(SetupError):
    """The provider refused to open a query session."""


class InvalidCounterPathError(SetupError):
    """The counter path is malformed or unknown to the provider."""


class CounterRegistrationError(SetupError):
    """The counter path could not be added to the session."""


class PrimingError(SetupError):
    """The initial, discarded collection pass failed."""


class StreamClosed(PerfPollerError):
    """The batch stream has been closed and holds no more batches."""
