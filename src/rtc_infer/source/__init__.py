from .base import VideoSource, source_ready
from .camera import CameraVideoSource
from .synthetic import SyntheticVideoSource

__all__ = ["VideoSource", "source_ready", "CameraVideoSource", "SyntheticVideoSource"]
