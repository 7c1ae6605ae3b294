# src/rtc_infer/signaling/messages.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class SdpKind(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"


@dataclass(frozen=True)
class SdpMessage:
    sdp: str
    kind: SdpKind

    def to_wire(self) -> Dict[str, Any]:
        return {"Sdp": self.sdp, "Type": self.kind.value}

    def has_video(self) -> bool:
        return any(line.startswith("m=video") for line in self.sdp.splitlines())


@dataclass(frozen=True)
class IceCandidate:
    """
    One trickled candidate. `candidate` is the a=candidate value as browsers
    carry it, i.e. with the leading "candidate:" tag.
    """
    candidate: str
    sdp_mid: str
    sdp_mline_index: int

    def to_wire(self) -> Dict[str, Any]:
        return {
            "Candidate": self.candidate,
            "SdpMid": self.sdp_mid,
            "SdpMLineIndex": int(self.sdp_mline_index),
        }
