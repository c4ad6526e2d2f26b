"""Cross-platform counter provider backed by psutil.

Answers a small catalogue of Windows-style counter paths so the collector
runs unchanged on hosts without PDH. Rate counters behave like their PDH
counterparts: they need two collection passes before they have a value.
"""

from __future__ import annotations

import abc
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import psutil

from ..errors import ProviderError, Status
from .base import InstanceValue
from .provider import CounterProvider

logger = logging.getLogger(__name__)

TOTAL_INSTANCE = "_Total"

_PATH_RE = re.compile(
    r"^(?:\\\\(?P<machine>[^\\]+))?\\?(?P<object>[^\\()]+)"
    r"(?:\((?P<instance>[^)]*)\))?\\(?P<counter>[^\\]+)$"
)


@dataclass(frozen=True)
class CounterPath:
    """A parsed ``\\\\machine\\object(instance)\\counter`` path."""

    object: str
    counter: str
    instance: str | None = None
    machine: str | None = None

    @property
    def wildcard(self) -> bool:
        return self.instance == "*"


def parse_counter_path(path: str) -> CounterPath:
    """Split a counter path into its parts.

    Raises ``ProviderError`` with status ``BAD_NAME`` when *path* is not
    shaped like a counter path.
    """
    match = _PATH_RE.match(path.strip())
    if match is None:
        raise ProviderError(Status.BAD_NAME, f"malformed counter path {path!r}")
    instance = match.group("instance")
    return CounterPath(
        object=match.group("object").strip(),
        counter=match.group("counter").strip(),
        instance=instance if instance else None,
        machine=match.group("machine"),
    )


class _Reader(abc.ABC):
    """Reads one counter across all of its instances."""

    multi_instance = True

    @abc.abstractmethod
    def sample(self) -> None:
        """Take a snapshot of the underlying system values."""

    @abc.abstractmethod
    def values(self) -> list[InstanceValue]:
        """Return the values computed from the latest snapshots."""


class _ProcessorTime(_Reader):
    def __init__(self) -> None:
        self._primed = False
        self._per_cpu: list[float] = []
        self._total = 0.0

    def sample(self) -> None:
        # cpu_percent(interval=0) measures since its previous call
        self._per_cpu = psutil.cpu_percent(interval=0, percpu=True)
        self._total = psutil.cpu_percent(interval=0)
        if not self._primed:
            self._primed = True
            self._per_cpu = []

    def values(self) -> list[InstanceValue]:
        if not self._per_cpu:
            raise ProviderError(Status.FAILURE, "processor time needs two samples")
        items = [InstanceValue(str(idx), float(pct)) for idx, pct in enumerate(self._per_cpu)]
        items.append(InstanceValue(TOTAL_INSTANCE, float(self._total)))
        return items


class _MemoryReader(_Reader):
    multi_instance = False

    def __init__(self, attr: str) -> None:
        self._attr = attr
        self._value: float | None = None

    def sample(self) -> None:
        self._value = float(getattr(psutil.virtual_memory(), self._attr))

    def values(self) -> list[InstanceValue]:
        if self._value is None:
            return []
        return [InstanceValue(None, self._value)]


class _NetworkRate(_Reader):
    clock = staticmethod(time.monotonic)

    def __init__(self, attr: str) -> None:
        self._attr = attr
        self._prev: dict[str, int] | None = None
        self._prev_time: float | None = None
        self._rates: list[InstanceValue] | None = None

    def sample(self) -> None:
        now = self.clock()
        counters = psutil.net_io_counters(pernic=True)
        current = {iface: getattr(nio, self._attr) for iface, nio in counters.items() if iface != "lo"}
        if self._prev is not None and self._prev_time is not None:
            dt = now - self._prev_time
            if dt > 0:
                rates = []
                for iface, value in current.items():
                    if iface not in self._prev:
                        continue
                    delta = value - self._prev[iface]
                    if delta < 0:
                        # counter wrapped or the interface was re-created
                        logger.debug("Counter %s of %s went backwards, no rate this tick", self._attr, iface)
                        continue
                    rates.append(InstanceValue(iface, delta / dt))
                self._rates = rates
        self._prev = current
        self._prev_time = now

    def values(self) -> list[InstanceValue]:
        if self._rates is None:
            raise ProviderError(Status.FAILURE, "network rate needs two samples")
        return list(self._rates)


class _ProcessWorkingSet(_Reader):
    def __init__(self) -> None:
        self._items: list[InstanceValue] = []

    def sample(self) -> None:
        items: list[InstanceValue] = []
        seen: dict[str, int] = {}
        for proc in psutil.process_iter(["name", "memory_info"]):
            # attributes psutil could not read come back as None
            name = proc.info.get("name") or ""
            mem = proc.info.get("memory_info")
            if not name or mem is None:
                continue
            # duplicate process names are told apart as name, name#1, name#2...
            count = seen.get(name, 0)
            seen[name] = count + 1
            instance = name if count == 0 else f"{name}#{count}"
            items.append(InstanceValue(instance, float(mem.rss)))
        self._items = items

    def values(self) -> list[InstanceValue]:
        return list(self._items)


class _DiskFreeSpace(_Reader):
    def __init__(self) -> None:
        self._items: list[InstanceValue] = []

    def sample(self) -> None:
        items: list[InstanceValue] = []
        for part in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                logger.debug("Skipping unreadable partition %s", part.mountpoint)
                continue
            items.append(InstanceValue(part.mountpoint, 100.0 - usage.percent))
        self._items = items

    def values(self) -> list[InstanceValue]:
        return list(self._items)


_CATALOGUE: dict[tuple[str, str], tuple[str, Callable[[], _Reader]]] = {
    ("processor", "% processor time"): (r"\Processor(*)\% Processor Time", _ProcessorTime),
    ("memory", "available bytes"): (r"\Memory\Available Bytes", lambda: _MemoryReader("available")),
    ("memory", "% committed bytes in use"): (r"\Memory\% Committed Bytes In Use", lambda: _MemoryReader("percent")),
    ("network interface", "bytes sent/sec"): (
        r"\Network Interface(*)\Bytes Sent/sec",
        lambda: _NetworkRate("bytes_sent"),
    ),
    ("network interface", "bytes received/sec"): (
        r"\Network Interface(*)\Bytes Received/sec",
        lambda: _NetworkRate("bytes_recv"),
    ),
    ("process", "working set"): (r"\Process(*)\Working Set", _ProcessWorkingSet),
    ("logicaldisk", "% free space"): (r"\LogicalDisk(*)\% Free Space", _DiskFreeSpace),
}


def supported_counters() -> list[str]:
    """Counter paths the psutil provider can answer."""
    return [canonical for canonical, _ in _CATALOGUE.values()]


@dataclass
class _RegisteredCounter:
    path: CounterPath
    reader: _Reader

    def read(self) -> list[InstanceValue]:
        items = self.reader.values()
        if not self.reader.multi_instance or self.path.wildcard:
            return items
        wanted = (self.path.instance or "").lower()
        return [item for item in items if (item.instance or "").lower() == wanted]


@dataclass
class _Session:
    counters: list[_RegisteredCounter] = field(default_factory=list)
    closed: bool = False


class PsutilCounterProvider(CounterProvider):
    """Serves counter paths from psutil system statistics."""

    @property
    def name(self) -> str:
        return "psutil"

    def open_session(self) -> _Session:
        return _Session()

    def _lookup(self, path: str) -> tuple[CounterPath, Callable[[], _Reader]]:
        parsed = parse_counter_path(path)
        if parsed.machine:
            raise ProviderError(Status.BAD_NAME, f"remote machine {parsed.machine!r} is not supported")
        entry = _CATALOGUE.get((parsed.object.lower(), parsed.counter.lower()))
        if entry is None:
            raise ProviderError(Status.BAD_NAME, f"unknown counter {path!r}")
        factory = entry[1]
        multi_instance = factory().multi_instance
        if multi_instance and parsed.instance is None:
            raise ProviderError(Status.BAD_NAME, f"counter {path!r} needs an instance, e.g. (*)")
        if not multi_instance and parsed.instance is not None:
            raise ProviderError(Status.BAD_NAME, f"counter {path!r} has no instances")
        return parsed, factory

    def validate_path(self, session: Any, path: str) -> None:
        self._lookup(path)

    def register_counter(self, session: _Session, path: str) -> _RegisteredCounter:
        self._check_open(session)
        parsed, factory = self._lookup(path)
        counter = _RegisteredCounter(parsed, factory())
        session.counters.append(counter)
        logger.debug("Registered %s on psutil session", path)
        return counter

    def collect(self, session: _Session) -> None:
        self._check_open(session)
        for counter in session.counters:
            try:
                counter.reader.sample()
            except (psutil.Error, OSError) as exc:
                raise ProviderError(Status.FAILURE, f"psutil sampling failed: {exc}") from exc

    def read_formatted_array(self, counter: _RegisteredCounter) -> list[InstanceValue]:
        return counter.read()

    def close_session(self, session: _Session) -> None:
        session.closed = True
        session.counters.clear()

    @staticmethod
    def _check_open(session: _Session) -> None:
        if session.closed:
            raise ProviderError(Status.FAILURE, "session is closed")
