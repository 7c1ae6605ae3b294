# src/rtc_infer/metrics/latency.py
from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from loguru import logger

# tried in this order on a single-object message; first hit wins
INFERENCE_TIME_KEYS = ("execution_time", "inference_time", "processing_time", "latency", "duration")


@dataclass(frozen=True)
class FusedLatency:
    inference_time_ms: float
    rtt_ms: float

    @property
    def total_ms(self) -> float:
        return self.inference_time_ms + self.rtt_ms


def _seconds(v: Any) -> Optional[float]:
    """Number (or numeric string) -> finite float seconds, else None."""
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, (int, float)):
        x = float(v)
    elif isinstance(v, str):
        try:
            x = float(v.strip())
        except ValueError:
            return None
    else:
        return None
    return x if math.isfinite(x) else None


def extract_inference_time(text: str) -> Optional[float]:
    """
    Pull the inference time (seconds) out of one message.

    Tried in order:
      a) array of objects carrying `execution_time` -> max
      b) array of bare numbers -> max
      c) object with `execution_time`
      d) object with one of INFERENCE_TIME_KEYS (first match)
      e) the whole body as one number
    Returns None when nothing matches.
    """
    stripped = text.strip()
    if not stripped:
        return None

    try:
        data = json.loads(stripped)
    except ValueError:
        return None

    if isinstance(data, list):
        times: List[float] = []
        for item in data:
            if isinstance(item, dict):
                t = _seconds(item.get("execution_time"))
                if t is not None:
                    times.append(t)
        if times:
            return max(times)

        if data and all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in data):
            nums = [_seconds(x) for x in data]
            if all(n is not None for n in nums):
                return max(nums)  # type: ignore[type-var]
        return None

    if isinstance(data, dict):
        t = _seconds(data.get("execution_time"))
        if t is not None:
            return t
        for key in INFERENCE_TIME_KEYS:
            if key in data:
                t = _seconds(data[key])
                if t is not None:
                    return t
        return None

    return _seconds(data)


class LatencyFusionEngine:
    """
    Pairs the inference time of the latest message with the latest RTT
    sample.

    The two inputs live on independent timelines: the RTT sample is whatever
    the last stats snapshot said, not the round trip that carried this
    particular message. Best effort, not exact correlation.
    """
    def __init__(self) -> None:
        self.inference_time_ms: float = 0.0
        self.rtt_ms: Optional[float] = None

    def ingest(self, message: Union[bytes, str]) -> float:
        """
        Update the inference component from one message. A miss resets it to
        0 so a previous message's value is never reused.
        """
        if isinstance(message, (bytes, bytearray, memoryview)):
            text = bytes(message).decode("utf-8", errors="replace")
        else:
            text = message

        t = extract_inference_time(text)
        if t is None:
            logger.warning("[latency] could not extract inference time from message")
            self.inference_time_ms = 0.0
        else:
            self.inference_time_ms = t * 1000.0
            logger.debug(f"[latency] inference time {self.inference_time_ms:.2f} ms")
        return self.inference_time_ms

    def observe_rtt(self, rtt_s: float) -> FusedLatency:
        self.rtt_ms = float(rtt_s) * 1000.0
        return self.current()

    def current(self) -> FusedLatency:
        return FusedLatency(
            inference_time_ms=self.inference_time_ms,
            rtt_ms=self.rtt_ms if self.rtt_ms is not None else 0.0,
        )

    def reset(self) -> None:
        self.inference_time_ms = 0.0
        self.rtt_ms = None
