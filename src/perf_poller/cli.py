"""CLI interface for perf_poller."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from . import __version__
from .collector.factory import PROVIDERS, build_provider
from .collector.manager import CounterCollector
from .config import PerfPollerConfig, load_config
from .errors import SetupError
from .exporter.base import BaseExporter
from .naming import metric_name

logger = logging.getLogger(__name__)


def _build_exporters(cfg: PerfPollerConfig) -> list[BaseExporter]:
    exporters: list[BaseExporter] = []

    if cfg.console.enabled:
        from .exporter.console import ConsoleExporter
        exporters.append(ConsoleExporter())

    if cfg.local_exporter.enabled:
        from .exporter.local import LocalExporter
        exporters.append(LocalExporter(cfg.local_exporter))

    if cfg.mode == "online":
        from .exporter.otel import OtelExporter
        exporters.append(OtelExporter(cfg.otel))

    return exporters


def _cmd_collect(args: argparse.Namespace) -> None:
    """Poll the configured counter and hand every batch to the exporters."""
    cfg = load_config(args.config)
    if args.counter:
        cfg.counter.path = args.counter
    if args.interval is not None:
        cfg.counter.interval_seconds = args.interval
    if args.provider:
        cfg.counter.provider = args.provider

    spec = cfg.counter.to_spec()
    stop_event = threading.Event()
    collector = CounterCollector(spec, build_provider(cfg.counter.provider), stop_event)
    exporters = _build_exporters(cfg)
    try:
        stream = collector.start()
    except SetupError as exc:
        logger.error("Unable to start collection: %s", exc)
        for exp in exporters:
            exp.shutdown()
        sys.exit(1)

    def _handle_signal(_sig: int, _frame: object) -> None:
        stop_event.set()

    previous = {sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)}

    print(
        f"perf-poller collecting {spec.path} every {spec.interval_seconds}s (mode={cfg.mode})",
        file=sys.stderr,
    )
    received = 0
    try:
        for batch in stream:
            for exp in exporters:
                try:
                    exp.export(batch)
                except Exception:
                    logger.exception("Exporter %s failed", type(exp).__name__)
            received += 1
            if args.count and received >= args.count:
                break
    finally:
        collector.stop()
        for exp in exporters:
            exp.shutdown()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    print(f"Collection stopped after {received} batches.", file=sys.stderr)


def _cmd_normalize(args: argparse.Namespace) -> None:
    """Print the metric name each raw counter path normalizes to."""
    for raw in args.raw:
        print(metric_name(raw, args.instance))


def _cmd_counters(_args: argparse.Namespace) -> None:
    from .collector.psutil_provider import supported_counters

    for path in supported_counters():
        print(path)


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"perf_poller {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the perf-poller CLI."""
    parser = argparse.ArgumentParser(
        prog="perf-poller",
        description="Poll a performance counter and stream normalized samples",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to perf_poller.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    # collect
    collect_p = sub.add_parser("collect", help="Poll a counter and export samples")
    collect_p.add_argument("--counter", default=None, help=r"Counter path, e.g. '\Processor(*)\% Processor Time'")
    collect_p.add_argument("--interval", type=int, default=None, help="Polling interval in seconds")
    collect_p.add_argument("--provider", choices=PROVIDERS, default=None, help="Counter provider")
    collect_p.add_argument("--count", type=int, default=0, help="Stop after this many batches (0 = run until interrupted)")
    collect_p.set_defaults(func=_cmd_collect)

    # normalize
    norm_p = sub.add_parser("normalize", help="Show the metric name for raw counter paths")
    norm_p.add_argument("raw", nargs="+", help="Raw counter path(s)")
    norm_p.add_argument("--instance", default=None, help="Instance name to append")
    norm_p.set_defaults(func=_cmd_normalize)

    # counters
    counters_p = sub.add_parser("counters", help="List counters the psutil provider supports")
    counters_p.set_defaults(func=_cmd_counters)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
