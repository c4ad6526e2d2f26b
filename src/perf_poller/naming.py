"""Metric name normalization.

Performance counter paths look like ``\\Processor(_Total)\\% Processor Time``.
Metrics backends want flat identifiers made of lowercase letters, digits,
dots and underscores, so every sample name goes through
:func:`normalize_counter_name` before it leaves the collector.
"""

from __future__ import annotations

import re

UNKNOWN_NAME = "unknown"

_PATH_REPLACEMENTS = (
    (".", ""),
    ("\\", "."),
    (" ", "_"),
)

_EDGE_JUNK_RE = re.compile(r"^[^a-z0-9]+|[^a-z0-9]+$")
# ASCII whitespace only, so the result does not depend on unicode tables
_WHITESPACE_RE = re.compile(r"[\t\n\f\r ]")
_DISALLOWED_RE = re.compile(r"[^a-z0-9._]")


def normalize_metric_name(raw: str) -> str:
    """Lowercase *raw* and reduce it to ``[a-z0-9._]``.

    Leading and trailing runs of non-alphanumeric characters are trimmed
    before the allow-list is applied. The function is idempotent and may
    return an empty string.
    """
    name = raw.lower()
    name = _EDGE_JUNK_RE.sub("", name)
    name = _WHITESPACE_RE.sub("_", name)
    return _DISALLOWED_RE.sub("", name)


def normalize_counter_name(raw: str) -> str:
    """Flatten a hierarchical counter path into a metric identifier.

    Literal dots are dropped first so they cannot collide with the dots
    that replace path separators, then spaces become underscores::

        >>> normalize_counter_name(r"\\.NET CLR Memory(*)\\# Gen 0 Collections")
        'net_clr_memory._gen_0_collections'
    """
    name = raw
    for old, new in _PATH_REPLACEMENTS:
        name = name.replace(old, new)
    return normalize_metric_name(name)


def metric_name(path: str, instance: str | None = None, placeholder: str = UNKNOWN_NAME) -> str:
    """Build the sample name for *path*, scoped to *instance* when given.

    Path and instance are normalized independently and joined with a dot.
    A part that normalizes to nothing is replaced by *placeholder* so
    samples never carry an empty identifier.
    """
    base = normalize_counter_name(path) or placeholder
    if not instance:
        return base
    return f"{base}.{normalize_counter_name(instance) or placeholder}"
