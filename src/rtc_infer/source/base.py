# src/rtc_infer/source/base.py
from __future__ import annotations

from typing import Optional, Protocol

import numpy as np


class VideoSource(Protocol):
    """
    Camera-like producer feeding the outbound track.

    read() returns the latest BGR frame (HxWx3 uint8) or None when nothing
    new has arrived since the previous read.
    """
    @property
    def width(self) -> int:
        ...

    @property
    def height(self) -> int:
        ...

    @property
    def is_playing(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def close(self) -> None:
        ...

    def read(self) -> Optional[np.ndarray]:
        ...


def source_ready(source: Optional[VideoSource], min_dim: int) -> bool:
    """A 0x0 / 1x1 placeholder surface does not count as ready."""
    if source is None or not source.is_playing:
        return False
    return source.width > min_dim and source.height > min_dim
