# src/rtc_infer/rtc/tracks.py
from __future__ import annotations

import asyncio
import threading
from typing import Optional

import cv2
import numpy as np
from aiortc import VideoStreamTrack
from av import VideoFrame
from loguru import logger

from rtc_infer.source.base import VideoSource


class FrameSurface:
    """
    Off-screen surface the outbound track reads from. Sized once from the
    source when media becomes ready.
    """
    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"surface size must be positive: {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self._released = False
        self.frames_copied = 0

    @property
    def released(self) -> bool:
        return self._released

    def blit(self, frame: np.ndarray) -> None:
        if self._released:
            return
        if frame.shape[0] != self.height or frame.shape[1] != self.width:
            # keep the negotiated size; the source changed resolution under us
            frame = cv2.resize(frame, (self.width, self.height))
        with self._lock:
            self._frame = frame.copy()
            self.frames_copied += 1

    def snapshot(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame

    def black(self) -> np.ndarray:
        return np.zeros((self.height, self.width, 3), dtype=np.uint8)

    def release(self) -> None:
        with self._lock:
            self._frame = None
            self._released = True


class SurfacePump:
    """
    Copies source -> surface once per frame. Independent of negotiation state;
    a missing or stopped source turns a step into a no-op.
    """
    def __init__(self, source: Optional[VideoSource], surface: FrameSurface, fps: int = 30):
        self.source = source
        self.surface = surface
        self.interval_s = 1.0 / max(1, int(fps))
        self._task: Optional[asyncio.Task] = None

    def step(self) -> bool:
        src = self.source
        if src is None or not src.is_playing or self.surface.released:
            return False
        frame = src.read()
        if frame is None:
            return False
        self.surface.blit(frame)
        return True

    async def _run(self) -> None:
        while True:
            self.step()
            await asyncio.sleep(self.interval_s)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class SurfaceVideoTrack(VideoStreamTrack):
    """Outbound video track; black frames until the pump has copied one."""
    def __init__(self, surface: FrameSurface):
        super().__init__()
        self.surface = surface

    async def recv(self) -> VideoFrame:
        pts, time_base = await self.next_timestamp()
        frame = self.surface.snapshot()
        if frame is None:
            frame = self.surface.black()
        vf = VideoFrame.from_ndarray(frame, format="bgr24")
        vf.pts = pts
        vf.time_base = time_base
        return vf

    def stop(self) -> None:
        logger.debug("[track] outbound video track stopped")
        super().stop()
