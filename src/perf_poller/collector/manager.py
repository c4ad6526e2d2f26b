"""Collection loop that polls one counter and streams sample batches."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Iterator

from ..errors import (
    CounterRegistrationError,
    InvalidCounterPathError,
    PrimingError,
    ProviderError,
    SessionOpenError,
    SetupError,
    Status,
    StreamClosed,
)
from ..naming import metric_name
from .base import Batch, CounterSpec, InstanceValue, Sample, format_value
from .provider import CounterProvider

logger = logging.getLogger(__name__)

# how often a blocked publish re-checks the stop event
_POLL_SECONDS = 0.1


class BatchStream:
    """Rendezvous channel carrying batches from the collector to a consumer.

    :meth:`publish` only returns once a consumer has taken the batch, so at
    most one batch is ever in flight. Iterating the stream yields batches
    until it is closed.
    """

    def __init__(self, stop_event: threading.Event) -> None:
        self._stop_event = stop_event
        self._cond = threading.Condition()
        self._pending: Batch | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, batch: Batch) -> bool:
        """Hand *batch* to a consumer. Returns False if the stream closed first."""
        with self._cond:
            if self._closed:
                return False
            self._pending = batch
            self._cond.notify_all()
            while self._pending is batch and not self._closed:
                if self._stop_event.is_set():
                    self._close_locked()
                    break
                self._cond.wait(_POLL_SECONDS)
            if self._pending is batch:
                self._pending = None
                return False
            return True

    def get(self, timeout: float | None = None) -> Batch:
        """Return the next batch.

        Raises :class:`StreamClosed` once the stream is closed and
        ``TimeoutError`` if nothing arrives within *timeout* seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._pending is None and not self._closed:
                remaining = _POLL_SECONDS
                if deadline is not None:
                    remaining = min(remaining, deadline - time.monotonic())
                    if remaining <= 0:
                        raise TimeoutError("no batch received")
                self._cond.wait(remaining)
            if self._pending is None:
                raise StreamClosed("batch stream is closed")
            batch = self._pending
            self._pending = None
            self._cond.notify_all()
            return batch

    def __iter__(self) -> Iterator[Batch]:
        while True:
            try:
                yield self.get()
            except StreamClosed:
                return

    def close(self) -> None:
        """Stop the producer and close the stream."""
        self._stop_event.set()
        with self._cond:
            self._close_locked()

    def _close_locked(self) -> None:
        self._closed = True
        self._cond.notify_all()


class CounterCollector:
    """Polls a single counter on a background thread.

    :meth:`start` runs the provider setup synchronously and raises a
    :class:`~perf_poller.errors.SetupError` if any step fails; otherwise it
    starts the polling thread and returns the :class:`BatchStream`. The
    provider session belongs to this collector alone and is closed when
    the loop ends.
    """

    def __init__(
        self,
        spec: CounterSpec,
        provider: CounterProvider,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._spec = spec
        self._provider = provider
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._thread: threading.Thread | None = None
        self._stream: BatchStream | None = None
        self._session: Any = None
        self._counter: Any = None
        self._ticks = 0
        self._published = 0
        self._skipped = 0

    @property
    def spec(self) -> CounterSpec:
        return self._spec

    @property
    def ticks(self) -> int:
        """Steady-state collection passes attempted so far."""
        return self._ticks

    @property
    def published_batches(self) -> int:
        return self._published

    @property
    def skipped_ticks(self) -> int:
        return self._skipped

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> BatchStream:
        """Set up the provider and start polling in the background."""
        if self._thread is not None:
            raise RuntimeError("collector already started")
        self._session, self._counter = self._setup()
        self._stream = BatchStream(self._stop_event)
        self._thread = threading.Thread(
            target=self._run,
            name=f"perf-poller-{self._provider.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "CounterCollector started (counter=%s, provider=%s, interval=%ds)",
            self._spec.path,
            self._provider.name,
            self._spec.interval_seconds,
        )
        return self._stream

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel polling, release the provider session and close the stream."""
        self._stop_event.set()
        if self._stream is not None:
            self._stream.close()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("collector thread did not exit within %.1fs", timeout)
            self._thread = None

    def _setup(self) -> tuple[Any, Any]:
        path = self._spec.path
        try:
            session = self._provider.open_session()
        except ProviderError as exc:
            raise SessionOpenError(f"unable to open query session: {exc}", exc.code) from exc

        try:
            try:
                self._provider.validate_path(session, path)
            except ProviderError as exc:
                if exc.status is Status.BAD_NAME:
                    raise InvalidCounterPathError(f"bad counter path {path!r}: {exc}", exc.code) from exc
                logger.warning("Validation of %s reported %s, registering anyway", path, exc)

            try:
                counter = self._provider.register_counter(session, path)
            except ProviderError as exc:
                raise CounterRegistrationError(f"unable to add counter {path!r}: {exc}", exc.code) from exc

            try:
                self._provider.collect(session)
            except ProviderError as exc:
                raise PrimingError(f"priming collection for {path!r} failed: {exc}", exc.code) from exc
        except SetupError:
            self._close_session(session)
            raise
        return session, counter

    def _run(self) -> None:
        """Background thread loop."""
        assert self._stream is not None
        try:
            while not self._stop_event.is_set():
                batch = self._tick()
                if batch is not None:
                    if not self._stream.publish(batch):
                        break
                    self._published += 1
                self._stop_event.wait(self._spec.interval_seconds)
        except Exception:
            logger.exception("Collection loop for %s crashed", self._spec.path)
        finally:
            self._close_session(self._session)
            self._session = None
            self._stream.close()
            logger.info(
                "CounterCollector stopped (ticks=%d, published=%d, skipped=%d)",
                self._ticks,
                self._published,
                self._skipped,
            )

    def _tick(self) -> Batch | None:
        """Run one collection pass. Returns None when the pass failed."""
        self._ticks += 1
        try:
            self._provider.collect(self._session)
        except ProviderError as exc:
            self._skipped += 1
            logger.warning("Tick %d: collection of %s failed, skipping: %s", self._ticks, self._spec.path, exc)
            return None

        try:
            values = self._provider.read_formatted_array(self._counter)
        except ProviderError as exc:
            logger.warning("Tick %d: reading %s failed: %s", self._ticks, self._spec.path, exc)
            values = []

        batch = [self._to_sample(v) for v in values]
        logger.debug("Tick %d: %d samples", self._ticks, len(batch))
        return batch

    def _to_sample(self, entry: InstanceValue) -> Sample:
        return Sample(
            name=metric_name(self._spec.path, entry.instance),
            value=format_value(entry.value),
            timestamp=int(time.time()),
        )

    def _close_session(self, session: Any) -> None:
        if session is None:
            return
        try:
            self._provider.close_session(session)
        except ProviderError:
            logger.exception("Closing %s session failed", self._provider.name)


def start_collection(
    spec: CounterSpec,
    provider: CounterProvider,
    stop_event: threading.Event | None = None,
) -> BatchStream:
    """Start polling *spec* on *provider* and return the batch stream.

    Setup failures raise before any thread is started. Setting
    *stop_event* (or closing the stream) ends the loop.
    """
    return CounterCollector(spec, provider, stop_event).start()
