"""Configuration loading and validation for perf_poller."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .collector.base import CounterSpec
from .collector.factory import current_platform

DOTNET_GEN0_COUNTER = r"\.NET CLR Memory(*)\# Gen 0 Collections"
PROCESSOR_TIME_COUNTER = r"\Processor(*)\% Processor Time"


def default_counter_path() -> str:
    if current_platform() == "windows":
        return DOTNET_GEN0_COUNTER
    return PROCESSOR_TIME_COUNTER


@dataclass
class CounterConfig:
    """Which counter to poll, how often and through which provider."""

    path: str = field(default_factory=default_counter_path)
    interval_seconds: int = 10
    provider: str = "auto"

    def to_spec(self) -> CounterSpec:
        return CounterSpec(path=self.path, interval_seconds=self.interval_seconds)


@dataclass
class ConsoleExporterConfig:
    """Console rendering settings."""

    enabled: bool = True


@dataclass
class LocalExporterConfig:
    """Local file exporter settings."""

    enabled: bool = False
    output_dir: str = "./perf_data"


@dataclass
class OtelExporterConfig:
    """OpenTelemetry exporter settings."""

    endpoint: str = "http://localhost:4318"
    service_name: str = "perf-poller"
    headers: dict[str, str] = field(default_factory=dict)
    export_interval_ms: int = 10000


@dataclass
class PerfPollerConfig:
    """Top-level perf_poller configuration."""

    mode: str = "local"
    counter: CounterConfig = field(default_factory=CounterConfig)
    console: ConsoleExporterConfig = field(default_factory=ConsoleExporterConfig)
    local_exporter: LocalExporterConfig = field(default_factory=LocalExporterConfig)
    otel: OtelExporterConfig = field(default_factory=OtelExporterConfig)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using the PERF_POLLER_ prefix."""
    env_map = {
        "PERF_POLLER_MODE": ("mode",),
        "PERF_POLLER_COUNTER_PATH": ("counter", "path"),
        "PERF_POLLER_INTERVAL": ("counter", "interval_seconds"),
        "PERF_POLLER_PROVIDER": ("counter", "provider"),
        "PERF_POLLER_OTEL_ENDPOINT": ("otel", "endpoint"),
        "PERF_POLLER_OTEL_SERVICE_NAME": ("otel", "service_name"),
        "PERF_POLLER_LOCAL_OUTPUT_DIR": ("local_exporter", "output_dir"),
    }
    for env_key, path in env_map.items():
        value = os.environ.get(env_key)
        if value is not None:
            obj = data
            for part in path[:-1]:
                obj = obj.setdefault(part, {})
            final_key = path[-1]
            if final_key == "interval_seconds":
                obj[final_key] = int(value)
            else:
                obj[final_key] = value
    return data


def _section(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        data = {}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _dict_to_config(data: dict[str, Any]) -> PerfPollerConfig:
    """Convert a raw dictionary to a PerfPollerConfig dataclass."""
    cfg = PerfPollerConfig(
        mode=data.get("mode", "local"),
        counter=_section(CounterConfig, data.get("counter")),
        console=_section(ConsoleExporterConfig, data.get("console")),
        local_exporter=_section(LocalExporterConfig, data.get("local_exporter")),
        otel=_section(OtelExporterConfig, data.get("otel")),
    )
    if cfg.mode not in ("local", "online"):
        raise ValueError(f"mode must be 'local' or 'online', got {cfg.mode!r}")
    # fail on a bad path or interval now rather than when collection starts
    cfg.counter.to_spec()
    return cfg


def load_config(path: str | Path | None = None) -> PerfPollerConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``perf_poller.yaml`` in the current directory if *path* is None.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("perf_poller.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return _dict_to_config(data)
