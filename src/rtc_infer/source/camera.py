# src/rtc_infer/source/camera.py
from __future__ import annotations

import threading
import time
from typing import Optional, Union

import cv2
import numpy as np
from loguru import logger


class CameraVideoSource:
    """
    cv2.VideoCapture on a reader thread. Only the newest frame is kept;
    read() hands it out once and returns None until the next one lands.
    """
    def __init__(self, device: Union[int, str] = 0, *, width: Optional[int] = None, height: Optional[int] = None):
        self.device = device
        self.req_width = width
        self.req_height = height
        self._cap: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._latest: Optional[np.ndarray] = None
        self._fresh = False
        self._w = 0
        self._h = 0

    @property
    def width(self) -> int:
        return self._w

    @property
    def height(self) -> int:
        return self._h

    @property
    def is_playing(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            raise RuntimeError(f"cannot open camera {self.device!r}")
        if self.req_width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self.req_width))
        if self.req_height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self.req_height))
        self._cap = cap
        self._stop.clear()
        t = threading.Thread(target=self._reader, name="camera-reader", daemon=True)
        self._thread = t
        t.start()
        logger.info(f"[camera] opened device {self.device!r}")

    def _reader(self) -> None:
        assert self._cap is not None
        while not self._stop.is_set():
            ok, frame = self._cap.read()
            if not ok or frame is None:
                time.sleep(0.01)
                continue
            with self._lock:
                self._latest = frame
                self._fresh = True
                self._h, self._w = frame.shape[:2]

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            if not self._fresh:
                return None
            self._fresh = False
            return self._latest

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._w = self._h = 0
