"""OpenTelemetry exporter – pushes counter samples via OTLP/HTTP."""

from __future__ import annotations

import logging
import re
from typing import Any

from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource, SERVICE_NAME

from ..collector.base import Batch
from ..config import OtelExporterConfig
from .base import BaseExporter

logger = logging.getLogger(__name__)

# Instrument names the SDK accepts; anything else raises on creation.
_INSTRUMENT_NAME_RE = re.compile(r"[a-zA-Z][-_./a-zA-Z0-9]{0,254}")


class OtelExporter(BaseExporter):
    """Exports counter samples to an OpenTelemetry endpoint.

    Each sample becomes a gauge observation named after the sample; the
    SDK's ``PeriodicExportingMetricReader`` flushes them to the configured
    OTLP/HTTP endpoint. Pass *reader* to collect somewhere else.
    """

    def __init__(self, config: OtelExporterConfig, reader: MetricReader | None = None) -> None:
        self._config = config
        resource = Resource.create({SERVICE_NAME: config.service_name})

        if reader is None:
            exporter_kwargs: dict[str, Any] = {
                "endpoint": f"{config.endpoint.rstrip('/')}/v1/metrics",
            }
            if config.headers:
                exporter_kwargs["headers"] = config.headers
            reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(**exporter_kwargs),
                export_interval_millis=config.export_interval_ms,
            )

        self._provider = MeterProvider(resource=resource, metric_readers=[reader])
        self._meter = self._provider.get_meter("perf_poller.counters")
        self._gauges: dict[str, Any] = {}

        logger.info(
            "OtelExporter initialized → %s (service=%s)",
            config.endpoint,
            config.service_name,
        )

    def _get_gauge(self, name: str) -> Any:
        if name not in self._gauges:
            self._gauges[name] = self._meter.create_gauge(
                name=name,
                description="Performance counter sample",
            )
        return self._gauges[name]

    def export(self, batch: Batch) -> None:
        for s in batch:
            try:
                value = float(s.value)
            except ValueError:
                logger.debug("Skipping non-numeric sample %s=%r", s.name, s.value)
                continue
            if not _INSTRUMENT_NAME_RE.fullmatch(s.name):
                logger.debug("Skipping sample %s, not a valid instrument name", s.name[:64])
                continue
            self._get_gauge(s.name).set(value)

    def shutdown(self) -> None:
        self._provider.shutdown()
        logger.info("OtelExporter shut down")
