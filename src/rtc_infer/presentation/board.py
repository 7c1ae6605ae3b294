# src/rtc_infer/presentation/board.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger

from rtc_infer.protocol.detections import UNKNOWN_LABEL, DetectionFrame
from rtc_infer.presentation.labels import COCO_LABELS, label_for


@dataclass(frozen=True)
class Box:
    """A detection as a display would draw it, still in source pixels."""
    x: float
    y: float
    width: float
    height: float
    class_id: int
    class_name: str
    confidence: float

    @property
    def label(self) -> str:
        return f"{self.class_id}, {self.class_name}, {self.confidence:.2f}"


class DetectionBoard:
    """
    What a display holds between frames.

    Each new frame replaces the previous boxes (never merged). An error
    clears them at once; a run of empty frames clears them once the grace
    period has passed since the last non-empty frame.
    """
    def __init__(
        self,
        *,
        max_boxes: int = 200,
        confidence_threshold: float = 0.0,
        clear_grace_s: float = 3.0,
        labels: Optional[Sequence[str]] = None,
    ):
        self.max_boxes = int(max_boxes)
        self.confidence_threshold = float(confidence_threshold)
        self.clear_grace_s = float(clear_grace_s)
        self.labels: Sequence[str] = labels if labels is not None else COCO_LABELS
        self.boxes: List[Box] = []
        self._last_detection_at: Optional[float] = None

    def apply(self, frame: DetectionFrame, now: Optional[float] = None) -> List[Box]:
        now = time.monotonic() if now is None else now
        if len(frame) == 0:
            self.tick(now)
            return self.boxes

        boxes: List[Box] = []
        for det in frame.detections[: self.max_boxes]:
            conf = det.effective_confidence
            if conf < self.confidence_threshold:
                continue
            cid = det.effective_class_id
            name = det.effective_class_name
            if name == UNKNOWN_LABEL and det.classification is None:
                name = label_for(cid, self.labels)
            boxes.append(Box(det.x, det.y, det.width, det.height, cid, name, conf))

        self.boxes = boxes
        self._last_detection_at = now
        return self.boxes

    def on_error(self, _exc: Optional[Exception] = None) -> None:
        logger.warning("[board] detection error, clearing boxes")
        self.clear()

    def tick(self, now: Optional[float] = None) -> bool:
        """Clear stale boxes; returns True when something was cleared."""
        now = time.monotonic() if now is None else now
        if not self.boxes:
            return False
        if self._last_detection_at is None or now - self._last_detection_at >= self.clear_grace_s:
            self.clear()
            return True
        return False

    def clear(self) -> None:
        self.boxes = []
