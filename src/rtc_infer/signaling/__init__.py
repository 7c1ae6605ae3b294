from .messages import IceCandidate, SdpKind, SdpMessage
from .transport import SignalingTransport

__all__ = ["IceCandidate", "SdpKind", "SdpMessage", "SignalingTransport"]
