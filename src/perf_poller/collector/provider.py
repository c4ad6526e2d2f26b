"""Abstract counter provider contract."""

from __future__ import annotations

import abc
from typing import Any

from .base import InstanceValue


class CounterProvider(abc.ABC):
    """Source of performance counter values.

    A provider hands out opaque session and counter handles. Every failing
    call raises :class:`~perf_poller.errors.ProviderError` with a
    :class:`~perf_poller.errors.Status`; native status codes never leak
    past the provider.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Provider name used in configuration and log output."""

    @abc.abstractmethod
    def open_session(self) -> Any:
        """Open a query session and return its handle."""

    @abc.abstractmethod
    def validate_path(self, session: Any, path: str) -> None:
        """Check that *path* names a counter this provider can read.

        Raises ``ProviderError`` with status ``BAD_NAME`` for malformed or
        unknown paths.
        """

    @abc.abstractmethod
    def register_counter(self, session: Any, path: str) -> Any:
        """Add *path* to *session* and return the counter handle."""

    @abc.abstractmethod
    def collect(self, session: Any) -> None:
        """Take one sample of every counter registered on *session*."""

    @abc.abstractmethod
    def read_formatted_array(self, counter: Any) -> list[InstanceValue]:
        """Return the per-instance values from the last collection pass.

        Order follows the provider's own instance enumeration. Any buffer
        sizing the backend needs happens in here.
        """

    @abc.abstractmethod
    def close_session(self, session: Any) -> None:
        """Release *session* and every counter registered on it."""
