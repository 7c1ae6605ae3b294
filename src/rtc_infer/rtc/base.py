# src/rtc_infer/rtc/base.py
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Mapping, Optional


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_LOCAL_MEDIA = "awaiting_local_media"
    NEGOTIATING_OFFER = "negotiating_offer"
    AWAITING_ANSWER = "awaiting_answer"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


# ICE connection states that end a Connected session
ICE_LOST_STATES = frozenset({"disconnected", "failed"})


class PeerStatsHandle:
    """
    Narrow, read-only view on the session's peer connection: it can ask for
    a stats report and nothing else. Returns an empty report while no peer
    connection exists.
    """
    def __init__(self, get_pc: Callable[[], Optional[Any]]):
        self._get_pc = get_pc

    async def get_stats(self) -> Mapping[str, Any]:
        pc = self._get_pc()
        if pc is None:
            return {}
        return await pc.getStats()
