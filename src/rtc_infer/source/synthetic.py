# src/rtc_infer/source/synthetic.py
from __future__ import annotations

from typing import Optional

import numpy as np


class SyntheticVideoSource:
    """Moving vertical bar on a grey field. Good enough to drive a session."""
    def __init__(self, width: int = 640, height: int = 480, bar_px: int = 40):
        self._w = int(width)
        self._h = int(height)
        self.bar_px = int(bar_px)
        self._playing = False
        self._n = 0

    @property
    def width(self) -> int:
        return self._w if self._playing else 0

    @property
    def height(self) -> int:
        return self._h if self._playing else 0

    @property
    def is_playing(self) -> bool:
        return self._playing

    def start(self) -> None:
        self._playing = True

    def close(self) -> None:
        self._playing = False

    def read(self) -> Optional[np.ndarray]:
        if not self._playing:
            return None
        frame = np.full((self._h, self._w, 3), 96, dtype=np.uint8)
        x0 = (self._n * 8) % max(1, self._w)
        frame[:, x0:x0 + self.bar_px] = (0, 200, 255)
        self._n += 1
        return frame
