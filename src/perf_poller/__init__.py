"""perf_poller - stream normalized performance counter samples."""

__version__ = "0.1.0"
