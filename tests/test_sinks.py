"""Tests covering the JSONL latency sink."""

import json

import pytest

from rtc_infer.metrics.latency import FusedLatency
from rtc_infer.telemetry.sinks import JsonlSink, latency_record


def test_latency_record_fields() -> None:
    rec = latency_record(FusedLatency(inference_time_ms=12.3456, rtt_ms=40.0), ts=5.0)

    assert rec == {"ts": 5.0, "inference_ms": 12.346, "rtt_ms": 40.0, "total_ms": pytest.approx(52.346)}


def test_sink_appends_one_line_per_value(tmp_path) -> None:
    path = tmp_path / "out" / "latency.jsonl"
    sink = JsonlSink(str(path))
    sink.write_latency(FusedLatency(10.0, 20.0))
    sink.write({"note": "x"})
    sink.close()
    sink.close()

    sink = JsonlSink(str(path))
    sink.write_latency(FusedLatency(1.0, 2.0))
    sink.close()

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line.get("total_ms") for line in lines] == [30.0, None, 3.0]
