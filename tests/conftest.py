"""Shared fixtures: an in-memory counter provider for exercising the loop."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

import pytest

from perf_poller.collector.base import InstanceValue
from perf_poller.collector.provider import CounterProvider
from perf_poller.errors import ProviderError, Status


class StubProvider(CounterProvider):
    """Scriptable provider.

    ``collect`` call 1 is the priming pass, so steady-state tick *n* is
    collect call *n + 1*. Ticks listed in *fail_ticks* raise.
    """

    def __init__(
        self,
        instances: list[InstanceValue] | None = None,
        *,
        fail_ticks: tuple[int, ...] = (),
        read_fail_ticks: tuple[int, ...] = (),
        validate_status: Status | None = None,
        fail_open: bool = False,
        register_code: int | None = None,
        fail_priming: bool = False,
    ) -> None:
        self.instances = instances if instances is not None else [InstanceValue("_Total", 1.5)]
        self.fail_ticks = fail_ticks
        self.read_fail_ticks = read_fail_ticks
        self.validate_status = validate_status
        self.fail_open = fail_open
        self.register_code = register_code
        self.fail_priming = fail_priming
        self.collect_calls = 0
        self.registered: list[str] = []
        self.opened = 0
        self.closed = 0
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "stub"

    @property
    def tick(self) -> int:
        return self.collect_calls - 1

    def open_session(self) -> Any:
        if self.fail_open:
            raise ProviderError(Status.FAILURE, "no query for you", 0xC0000BBC)
        self.opened += 1
        return {"session": self.opened}

    def validate_path(self, session: Any, path: str) -> None:
        if self.validate_status is not None:
            raise ProviderError(self.validate_status, f"validation of {path}", 0xC0000BC0)

    def register_counter(self, session: Any, path: str) -> Any:
        if self.register_code is not None:
            raise ProviderError(Status.FAILURE, "add counter failed", self.register_code)
        self.registered.append(path)
        return path

    def collect(self, session: Any) -> None:
        with self._lock:
            self.collect_calls += 1
        if self.collect_calls == 1 and self.fail_priming:
            raise ProviderError(Status.FAILURE, "priming failed", 0x800007D5)
        if self.tick in self.fail_ticks:
            raise ProviderError(Status.FAILURE, "collection failed", 0x800007D5)

    def read_formatted_array(self, counter: Any) -> list[InstanceValue]:
        if self.tick in self.read_fail_ticks:
            raise ProviderError(Status.FAILURE, "read failed")
        return list(self.instances)

    def close_session(self, session: Any) -> None:
        self.closed += 1


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll *predicate* until it is true or *timeout* expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture()
def stub_provider() -> StubProvider:
    return StubProvider(
        [
            InstanceValue("w3wp", 12.0),
            InstanceValue("svchost", 0.5),
            InstanceValue("_Global_", 3.25),
        ]
    )
