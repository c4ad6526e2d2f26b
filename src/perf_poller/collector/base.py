"""Sample model shared by the collector, providers and exporters."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, NamedTuple


class InstanceValue(NamedTuple):
    """One entry of a formatted counter array."""

    instance: str | None
    value: float


@dataclass(frozen=True)
class Sample:
    """A single normalized metric data point."""

    name: str
    value: str
    timestamp: int

    def __str__(self) -> str:
        when = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.timestamp))
        return f"{self.name} | {self.value} | {when}"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "timestamp": self.timestamp}


Batch = list[Sample]


@dataclass(frozen=True)
class CounterSpec:
    """The counter to poll and how often."""

    path: str
    interval_seconds: int = 10

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("counter path must not be empty")
        if isinstance(self.interval_seconds, bool) or not isinstance(self.interval_seconds, int):
            raise ValueError(f"interval_seconds must be an integer, got {self.interval_seconds!r}")
        if self.interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {self.interval_seconds}")


def format_value(value: float) -> str:
    """Render a counter value as shortest round-trip decimal text.

    Integral values drop the trailing ``.0`` so ``3.0`` reads ``"3"``.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(float(value))
    if text.endswith(".0"):
        text = text[:-2]
    return text
