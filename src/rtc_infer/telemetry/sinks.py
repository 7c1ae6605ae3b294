# src/rtc_infer/telemetry/sinks.py
from __future__ import annotations

import json
import os
import time
from typing import Any, Dict, Optional

from rtc_infer.metrics.latency import FusedLatency


def latency_record(fused: FusedLatency, ts: Optional[float] = None) -> Dict[str, Any]:
    return {
        "ts": time.time() if ts is None else ts,
        "inference_ms": round(fused.inference_time_ms, 3),
        "rtt_ms": round(fused.rtt_ms, 3),
        "total_ms": round(fused.total_ms, 3),
    }


class JsonlSink:
    """Append-only JSON lines file, one record per fused latency value."""
    def __init__(self, metrics_path: str):
        self.metrics_path = metrics_path
        parent = os.path.dirname(os.path.abspath(metrics_path))
        os.makedirs(parent, exist_ok=True)
        self._f = open(metrics_path, "a", encoding="utf-8")

    def write(self, record: Dict[str, Any]) -> None:
        self._f.write(json.dumps(record, ensure_ascii=False) + "\n")
        self._f.flush()

    def write_latency(self, fused: FusedLatency) -> None:
        self.write(latency_record(fused))

    def close(self) -> None:
        if self._f.closed:
            return
        try:
            self._f.flush()
        finally:
            self._f.close()
