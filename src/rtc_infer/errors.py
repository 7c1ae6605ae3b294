# src/rtc_infer/errors.py
from __future__ import annotations

from typing import Optional


class RtcInferError(Exception):
    pass


class SignalingError(RtcInferError):
    """
    HTTP exchange with the signaling endpoint failed (connect error, timeout,
    non-2xx status).
    """
    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SignalingProtocolError(SignalingError):
    """The endpoint answered, but the body is not a usable SDP answer."""


class MediaTimeout(RtcInferError):
    def __init__(self, timeout_s: float):
        super().__init__(f"video source not ready after {timeout_s:.1f}s")
        self.timeout_s = float(timeout_s)


class NegotiationError(RtcInferError):
    pass


class DetectionDecodeError(RtcInferError):
    pass
