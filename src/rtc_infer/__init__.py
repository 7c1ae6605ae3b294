"""
rtc_infer: WebRTC client for remote object detection.

The session streams local video to an inference server, receives detection
results on a data channel, and fuses the server's inference time with the
connection RTT.
"""

from .config import ClientConfig, PipelineConfig, SessionConfig, SignalingConfig, load_config
from .pipeline import InferencePipeline
from .rtc import PeerSessionManager, SessionState

__all__ = [
    "ClientConfig",
    "PipelineConfig",
    "SessionConfig",
    "SignalingConfig",
    "load_config",
    "InferencePipeline",
    "PeerSessionManager",
    "SessionState",
]

__version__ = "0.1.0"
