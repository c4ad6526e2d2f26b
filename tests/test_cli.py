"""Tests for the perf-poller command line."""

import json
from pathlib import Path

import pytest

from perf_poller import __version__
from perf_poller.cli import main
from perf_poller.collector.psutil_provider import supported_counters


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    """Keep stray perf_poller.yaml files and env overrides out of the tests."""
    monkeypatch.chdir(tmp_path)
    for key in ("PERF_POLLER_MODE", "PERF_POLLER_COUNTER_PATH", "PERF_POLLER_INTERVAL", "PERF_POLLER_PROVIDER"):
        monkeypatch.delenv(key, raising=False)


def test_version(capsys):
    main(["version"])
    assert capsys.readouterr().out.strip() == f"perf_poller {__version__}"


def test_no_command_exits(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 1


def test_normalize(capsys):
    main(["normalize", r"\Processor(_Total)\% Processor Time", r"\.NET CLR Memory(*)\# Gen 0 Collections"])
    assert capsys.readouterr().out.splitlines() == [
        "processor_total._processor_time",
        "net_clr_memory._gen_0_collections",
    ]


def test_normalize_with_instance(capsys):
    main(["normalize", r"\Process(*)\Working Set", "--instance", "svchost#1"])
    assert capsys.readouterr().out.strip() == "process.working_set.svchost1"


def test_counters(capsys):
    main(["counters"])
    assert capsys.readouterr().out.splitlines() == supported_counters()


def test_collect_prints_batches(capsys):
    main([
        "collect",
        "--provider", "psutil",
        "--counter", r"\Memory\Available Bytes",
        "--interval", "1",
        "--count", "2",
    ])
    captured = capsys.readouterr()
    lines = captured.out.splitlines()
    assert len(lines) == 2
    assert all(line.startswith("memory.available_bytes | ") for line in lines)
    assert "Collection stopped after 2 batches." in captured.err


def test_collect_writes_local_jsonl(tmp_path, capsys):
    out_dir = tmp_path / "out"
    Path("perf_poller.yaml").write_text(
        "counter:\n"
        "  path: '\\Memory\\% Committed Bytes In Use'\n"
        "  interval_seconds: 1\n"
        "  provider: psutil\n"
        "console:\n"
        "  enabled: false\n"
        "local_exporter:\n"
        "  enabled: true\n"
        f"  output_dir: '{out_dir}'\n",
        encoding="utf-8",
    )
    main(["collect", "--count", "1"])
    assert capsys.readouterr().out == ""
    files = list(out_dir.glob("samples-*.jsonl"))
    assert len(files) == 1
    record = json.loads(files[0].read_text(encoding="utf-8").splitlines()[0])
    assert record["name"] == "memory._committed_bytes_in_use"
    assert 0.0 <= float(record["value"]) <= 100.0


def test_collect_setup_failure_exits():
    with pytest.raises(SystemExit) as exc_info:
        main(["collect", "--provider", "psutil", "--counter", r"\Nope(*)\Nothing", "--count", "1"])
    assert exc_info.value.code == 1
