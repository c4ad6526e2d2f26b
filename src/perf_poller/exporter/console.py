"""Console exporter - prints one line per sample."""

from __future__ import annotations

import sys
from typing import TextIO

from ..collector.base import Batch
from .base import BaseExporter


class ConsoleExporter(BaseExporter):
    """Writes ``name | value | time`` lines to a text stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def export(self, batch: Batch) -> None:
        for sample in batch:
            print(sample, file=self._stream)
        self._stream.flush()

    def shutdown(self) -> None:
        self._stream.flush()
