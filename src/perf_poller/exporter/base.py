"""Base interface for batch exporters."""

from __future__ import annotations

import abc

from ..collector.base import Batch


class BaseExporter(abc.ABC):
    """Abstract base for exporters that receive sample batches."""

    @abc.abstractmethod
    def export(self, batch: Batch) -> None:
        """Export one batch of samples."""

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Flush and release resources."""
