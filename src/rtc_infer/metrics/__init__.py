from .latency import FusedLatency, LatencyFusionEngine, extract_inference_time
from .stats import PairState, StatsQuery, StatsSample, StatsSampler

__all__ = [
    "FusedLatency",
    "LatencyFusionEngine",
    "extract_inference_time",
    "PairState",
    "StatsQuery",
    "StatsSample",
    "StatsSampler",
]
