# src/rtc_infer/config.py
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


@dataclass
class SignalingConfig:
    offer_url: str = "https://127.0.0.1:8080/offer"
    candidate_url: str = "https://127.0.0.1:8080/candidate"
    timeout_s: float = 10.0
    # inference servers usually run with self-signed certificates
    verify_tls: bool = True


@dataclass
class SessionConfig:
    ice_servers: List[str] = field(default_factory=lambda: ["stun:stun.l.google.com:19302"])
    media_timeout_s: float = 10.0
    media_poll_s: float = 0.05
    # width/height must both exceed this before the source counts as ready
    min_frame_dim: int = 16
    channel_label: str = "detections"
    channel_protocol: str = "json"
    fps: int = 30
    # buffer candidates that show up before the matching description exists
    buffer_early_candidates: bool = True


@dataclass
class PipelineConfig:
    confidence_threshold: float = 0.0
    max_boxes: int = 200
    clear_grace_s: float = 3.0
    # aiortc reports no candidate-pair stats; fall back to RTCP round trips
    rtt_from_remote_inbound: bool = True
    labels_path: Optional[str] = None


@dataclass
class ClientConfig:
    signaling: SignalingConfig = field(default_factory=SignalingConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def _apply_section(target: Any, values: Dict[str, Any], section: str) -> None:
    known = {f.name for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"unknown config key {section}.{key}, expected one of {sorted(known)}")
        setattr(target, key, value)


def config_from_dict(data: Dict[str, Any]) -> ClientConfig:
    cfg = ClientConfig()
    sections = {"signaling": cfg.signaling, "session": cfg.session, "pipeline": cfg.pipeline}
    for name, values in data.items():
        if name not in sections:
            raise ValueError(f"unknown config section {name!r}, expected one of {sorted(sections)}")
        if not isinstance(values, dict):
            raise ValueError(f"config section {name!r} must be an object, got {type(values).__name__}")
        _apply_section(sections[name], values, name)

    if cfg.session.min_frame_dim < 1:
        raise ValueError(f"session.min_frame_dim must be >= 1: {cfg.session.min_frame_dim}")
    if cfg.session.media_timeout_s <= 0:
        raise ValueError(f"session.media_timeout_s must be > 0: {cfg.session.media_timeout_s}")
    if not (0.0 <= cfg.pipeline.confidence_threshold <= 1.0):
        raise ValueError(f"pipeline.confidence_threshold must be in [0,1]: {cfg.pipeline.confidence_threshold}")
    return cfg


def load_config(path: str) -> ClientConfig:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must hold a JSON object")
    return config_from_dict(data)
