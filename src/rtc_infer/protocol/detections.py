# src/rtc_infer/protocol/detections.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from rtc_infer.errors import DetectionDecodeError

UNKNOWN_LABEL = "unknown"
CONTROL_MARKER = "msg"


@dataclass(frozen=True)
class Classification:
    """Second-stage classifier result riding on a detection."""
    class_id: int
    class_name: str
    confidence: float


@dataclass(frozen=True)
class Detection:
    """
    One box as the server sent it.

    Units: x/y/width/height are pixels in the sender's source frame, origin
    top-left, no scaling applied. Confidence is in [0,1].

    When `classification` is set it is authoritative: the effective_* fields
    read from it and never fall back to the flat fields.
    """
    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_id: int
    class_name: str = UNKNOWN_LABEL
    classification: Optional[Classification] = None
    execution_time: Optional[float] = None

    @property
    def effective_class_id(self) -> int:
        if self.classification is not None:
            return self.classification.class_id
        return self.class_id

    @property
    def effective_class_name(self) -> str:
        if self.classification is not None:
            return self.classification.class_name
        return self.class_name

    @property
    def effective_confidence(self) -> float:
        if self.classification is not None:
            return self.classification.confidence
        return self.confidence


class MessageKind(str, Enum):
    DETECTIONS = "detections"
    CONTROL = "control"


@dataclass(frozen=True)
class DetectionFrame:
    """All detections decoded from one inbound message, in wire order."""
    kind: MessageKind
    detections: Tuple[Detection, ...] = ()
    skipped: int = 0
    text: str = field(default="", repr=False)

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)


def split_objects(body: str) -> List[str]:
    """
    Cut top-level `{...}` spans out of an array body by brace counting.

    Braces inside string values are not special-cased, so a label such as
    "a}b" breaks the split. Stray closing braces outside any object are
    ignored. An object still open at the end of the body is returned as is,
    so decoding it fails and it is counted as skipped.
    """
    spans: List[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(body):
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}":
            if depth == 0:
                continue
            depth -= 1
            if depth == 0:
                spans.append(body[start:i + 1])
    if depth > 0:
        spans.append(body[start:])
    return spans


def _as_float(obj: Dict[str, Any], key: str, default: float = 0.0) -> float:
    v = obj.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        raise ValueError(f"{key} must be a number, got bool")
    return float(v)


def _as_int(obj: Dict[str, Any], key: str, default: int = 0) -> int:
    v = obj.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        raise ValueError(f"{key} must be an integer, got bool")
    return int(v)


def _as_label(v: Any) -> str:
    if v is None:
        return UNKNOWN_LABEL
    s = str(v)
    return s if s else UNKNOWN_LABEL


def decode_detection(obj: Dict[str, Any]) -> Detection:
    """
    Build a Detection from one decoded wire object.

    The mere presence of the `classification` key selects the override,
    whatever its value: a null or partial sub-object still wins over the
    flat class fields, with missing parts reading as 0 / "unknown".
    """
    classification: Optional[Classification] = None
    if "classification" in obj:
        sub = obj["classification"]
        if sub is None:
            sub = {}
        if not isinstance(sub, dict):
            raise ValueError(f"classification must be an object, got {type(sub).__name__}")
        classification = Classification(
            class_id=_as_int(sub, "class_id"),
            class_name=_as_label(sub.get("class_name")),
            confidence=_as_float(sub, "confidence"),
        )

    exec_time = obj.get("execution_time")
    return Detection(
        x=_as_float(obj, "x"),
        y=_as_float(obj, "y"),
        width=_as_float(obj, "width"),
        height=_as_float(obj, "height"),
        confidence=_as_float(obj, "confidence"),
        class_id=_as_int(obj, "class_id"),
        class_name=_as_label(obj.get("class_name")),
        classification=classification,
        execution_time=None if exec_time is None or isinstance(exec_time, bool) else float(exec_time),
    )


class DetectionProtocolParser:
    """
    Tolerant decoder for data-channel detection messages.

    A message is either a JSON array of detection objects or a small control
    object mentioning `msg`. Each array element is decoded on its own; a bad
    element is logged and skipped and the rest of the batch survives. The
    parser never caps the number of detections.
    """
    def parse(self, data: Union[bytes, str]) -> DetectionFrame:
        if isinstance(data, (bytes, bytearray, memoryview)):
            try:
                text = bytes(data).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DetectionDecodeError(f"message is not UTF-8: {exc}") from exc
        else:
            text = data

        stripped = text.lstrip()
        if stripped.startswith("["):
            return self._parse_array(text)
        if CONTROL_MARKER in text:
            logger.debug("[parser] control message, ignoring")
            return DetectionFrame(kind=MessageKind.CONTROL, text=text)
        raise DetectionDecodeError(f"not a detection array: {text[:80]!r}")

    def _parse_array(self, text: str) -> DetectionFrame:
        body = text.strip().strip("[]")
        spans = split_objects(body)

        out: List[Detection] = []
        skipped = 0
        for i, span in enumerate(spans):
            try:
                obj = json.loads(span)
                if not isinstance(obj, dict):
                    raise ValueError(f"expected an object, got {type(obj).__name__}")
                out.append(decode_detection(obj))
            except (ValueError, TypeError) as exc:
                # json.JSONDecodeError is a ValueError
                skipped += 1
                logger.warning(f"[parser] skipping detection {i}: {exc}")

        logger.debug(f"[parser] {len(out)} detections ({skipped} skipped)")
        return DetectionFrame(kind=MessageKind.DETECTIONS, detections=tuple(out), skipped=skipped, text=text)
