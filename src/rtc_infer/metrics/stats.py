# src/rtc_infer/metrics/stats.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Protocol

from loguru import logger

CANDIDATE_PAIR = "candidate-pair"
REMOTE_INBOUND_RTP = "remote-inbound-rtp"


class PairState(str, Enum):
    SUCCEEDED = "succeeded"
    IN_PROGRESS = "in-progress"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Any) -> "PairState":
        if raw == cls.SUCCEEDED.value:
            return cls.SUCCEEDED
        if raw == cls.IN_PROGRESS.value:
            return cls.IN_PROGRESS
        return cls.OTHER


@dataclass(frozen=True)
class StatsSample:
    stats_id: str
    rtt_s: float
    state: PairState
    captured_at: float = field(default_factory=time.time)


class StatsQuery(Protocol):
    """Read-only stats capability handed out by the session manager."""
    async def get_stats(self) -> Mapping[str, Any]:
        ...


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


class StatsSampler:
    """
    Pulls one stats snapshot and reads the RTT of the usable candidate pairs.

    Every candidate-pair entry in state succeeded / in-progress that reports
    `currentRoundTripTime` yields its own sample; nothing is aggregated.
    """
    def __init__(self, query: StatsQuery, *, fallback_remote_inbound: bool = False):
        self._query = query
        self.fallback_remote_inbound = bool(fallback_remote_inbound)

    async def sample(self) -> List[StatsSample]:
        report = await self._query.get_stats()
        if not report:
            logger.warning("[stats] stats report is empty")
            return []

        pairs = [(key, s) for key, s in report.items() if _field(s, "type") == CANDIDATE_PAIR]
        samples: List[StatsSample] = []
        for key, s in pairs:
            state = PairState.parse(_field(s, "state"))
            if state is PairState.OTHER:
                continue
            rtt = _field(s, "currentRoundTripTime")
            if rtt is None:
                continue
            samples.append(StatsSample(stats_id=str(_field(s, "id") or key), rtt_s=float(rtt), state=state))

        if not pairs:
            logger.warning("[stats] no candidate pair statistics found in the stats report")
            if self.fallback_remote_inbound:
                samples = self._remote_inbound(report)
        elif not samples:
            logger.warning(f"[stats] {len(pairs)} candidate pairs, none succeeded/in-progress with an RTT")

        for smp in samples:
            logger.debug(f"[stats] {smp.stats_id} rtt={smp.rtt_s * 1000.0:.2f} ms state={smp.state.value}")
        return samples

    def _remote_inbound(self, report: Mapping[str, Any]) -> List[StatsSample]:
        out: List[StatsSample] = []
        for key, s in report.items():
            if _field(s, "type") != REMOTE_INBOUND_RTP:
                continue
            rtt: Optional[float] = _field(s, "roundTripTime")
            if rtt is None:
                continue
            out.append(StatsSample(stats_id=str(_field(s, "id") or key), rtt_s=float(rtt), state=PairState.OTHER))
        return out
