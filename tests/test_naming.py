"""Tests for metric name normalization."""

import re

import pytest

from perf_poller.naming import (
    UNKNOWN_NAME,
    metric_name,
    normalize_counter_name,
    normalize_metric_name,
)

NAME_RE = re.compile(r"^[a-z0-9._]*$")

CORPUS = [
    "",
    "***",
    "   ",
    r"\Processor(_Total)\% Processor Time",
    r"\.NET CLR Memory(*)\# Gen 0 Collections",
    r"\\WEBHOST01\Process(w3wp#2)\Working Set - Private",
    r"\LogicalDisk(C:)\% Free Space",
    "\tTabbed\tName\n",
    "Already.normalized_name",
    "UPPER case MiXeD",
    "..leading.dots..",
    "__underscores__",
    "émoji ☃ and ünïcödé",
    "a" * 200,
    "(_Total)",
    "svchost#1",
]


def _well_formed(name: str) -> bool:
    if not NAME_RE.match(name):
        return False
    return name == "" or (name[0].isalnum() and name[-1].isalnum())


def test_processor_time_counter():
    assert normalize_counter_name(r"\Processor(_Total)\% Processor Time") == "processor_total._processor_time"


def test_dotnet_counter_drops_literal_dots():
    assert normalize_counter_name(r"\.NET CLR Memory(*)\# Gen 0 Collections") == "net_clr_memory._gen_0_collections"
    assert normalize_counter_name(".NET CLR Memory(*)\\# Gen 0 Collections") == "net_clr_memory._gen_0_collections"


def test_empty_and_punctuation_only():
    assert normalize_counter_name("") == ""
    assert normalize_counter_name("***") == ""
    assert normalize_metric_name("") == ""
    assert normalize_metric_name("***") == ""


def test_metric_name_trims_edges_and_lowercases():
    assert normalize_metric_name("--Hello World!!") == "hello_world"
    assert normalize_metric_name("a\tb") == "a_b"


def test_metric_name_keeps_dots_and_underscores():
    assert normalize_metric_name("system.cpu_usage") == "system.cpu_usage"


def test_counter_name_separators_become_dots():
    assert normalize_counter_name(r"Memory\Available Bytes") == "memory.available_bytes"


@pytest.mark.parametrize("raw", CORPUS)
def test_output_domain(raw):
    assert _well_formed(normalize_metric_name(raw))
    assert _well_formed(normalize_counter_name(raw))


@pytest.mark.parametrize("raw", CORPUS)
def test_metric_name_normalization_is_idempotent(raw):
    once = normalize_metric_name(raw)
    assert normalize_metric_name(once) == once


@pytest.mark.parametrize("raw", [s for s in CORPUS if "." not in normalize_counter_name(s)])
def test_counter_normalization_idempotent_without_dots(raw):
    once = normalize_counter_name(raw)
    assert normalize_counter_name(once) == once


def test_normalization_is_deterministic():
    raw = r"\Network Interface(Intel[R] Ethernet)\Bytes Total/sec"
    assert len({normalize_counter_name(raw) for _ in range(10)}) == 1


class TestMetricName:
    """Joining counter path and instance names."""

    def test_no_instance(self):
        assert metric_name(r"\Memory\Available Bytes") == "memory.available_bytes"
        assert metric_name(r"\Memory\Available Bytes", "") == "memory.available_bytes"

    def test_with_instance(self):
        name = metric_name(r"\.NET CLR Memory(*)\# Gen 0 Collections", "w3wp")
        assert name == "net_clr_memory._gen_0_collections.w3wp"

    def test_instance_is_normalized_independently(self):
        name = metric_name(r"\Processor(*)\% Processor Time", "_Total")
        assert name == "processor._processor_time.total"

    def test_instance_with_dots_keeps_single_separator(self):
        name = metric_name(r"\Process(*)\Working Set", "python3.11")
        assert name == "process.working_set.python311"

    def test_empty_instance_uses_placeholder(self):
        name = metric_name(r"\Process(*)\Working Set", "***")
        assert name == f"process.working_set.{UNKNOWN_NAME}"

    def test_empty_path_uses_placeholder(self):
        assert metric_name("%%%") == UNKNOWN_NAME
        assert metric_name("%%%", "cpu0") == f"{UNKNOWN_NAME}.cpu0"

    def test_custom_placeholder(self):
        assert metric_name("***", placeholder="unnamed") == "unnamed"

    def test_result_is_well_formed(self):
        for raw in CORPUS:
            assert _well_formed(metric_name(raw, raw))
            assert metric_name(raw, raw) != ""
