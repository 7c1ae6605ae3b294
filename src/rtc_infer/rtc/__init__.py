"""
WebRTC session: negotiation state machine, outbound track and surface.
"""

from .base import PeerStatsHandle, SessionState
from .session import PeerSessionManager
from .tracks import FrameSurface, SurfacePump, SurfaceVideoTrack

__all__ = [
    "PeerSessionManager",
    "PeerStatsHandle",
    "SessionState",
    "FrameSurface",
    "SurfacePump",
    "SurfaceVideoTrack",
]
