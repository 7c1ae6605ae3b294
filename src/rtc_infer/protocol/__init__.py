from .detections import (
    Classification,
    Detection,
    DetectionFrame,
    DetectionProtocolParser,
    MessageKind,
    split_objects,
)

__all__ = [
    "Classification",
    "Detection",
    "DetectionFrame",
    "DetectionProtocolParser",
    "MessageKind",
    "split_objects",
]
