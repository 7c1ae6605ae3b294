"""Tests covering the detection board and label tables."""

from typing import List

import pytest

from rtc_infer.presentation.board import DetectionBoard
from rtc_infer.presentation.labels import COCO_LABELS, label_for, load_labels
from rtc_infer.protocol.detections import Classification, Detection, DetectionFrame, MessageKind


def _frame(dets: List[Detection]) -> DetectionFrame:
    return DetectionFrame(kind=MessageKind.DETECTIONS, detections=tuple(dets))


def _det(class_id: int = 0, confidence: float = 0.9, x: float = 0.0, **kw) -> Detection:
    return Detection(x=x, y=0.0, width=10.0, height=10.0, confidence=confidence, class_id=class_id, **kw)


def test_new_frame_replaces_boxes() -> None:
    board = DetectionBoard()

    board.apply(_frame([_det(x=1), _det(x=2)]), now=0.0)
    boxes = board.apply(_frame([_det(x=3)]), now=0.1)

    assert [b.x for b in boxes] == [3]


def test_box_count_capped() -> None:
    board = DetectionBoard(max_boxes=200)

    boxes = board.apply(_frame([_det(x=i) for i in range(250)]), now=0.0)

    assert len(boxes) == 200
    assert boxes[-1].x == 199


def test_threshold_drops_low_confidence() -> None:
    board = DetectionBoard(confidence_threshold=0.5)

    boxes = board.apply(_frame([_det(confidence=0.4, x=1), _det(confidence=0.5, x=2)]), now=0.0)

    assert [b.x for b in boxes] == [2]


def test_classification_drives_the_label() -> None:
    det = _det(class_id=0, confidence=0.3, classification=Classification(7, "truck", 0.8), class_name="person")
    board = DetectionBoard(confidence_threshold=0.5)

    boxes = board.apply(_frame([det]), now=0.0)

    assert boxes[0].label == "7, truck, 0.80"


def test_unknown_name_looked_up_from_labels() -> None:
    board = DetectionBoard()

    boxes = board.apply(_frame([_det(class_id=2), _det(class_id=500), _det(class_id=1, class_name="bike")]), now=0.0)

    assert [b.class_name for b in boxes] == ["car", "class_500", "bike"]


def test_empty_frames_clear_after_grace() -> None:
    board = DetectionBoard(clear_grace_s=3.0)
    board.apply(_frame([_det()]), now=10.0)

    assert len(board.apply(_frame([]), now=12.0)) == 1
    assert board.apply(_frame([]), now=13.0) == []


def test_tick_clears_stale_boxes() -> None:
    board = DetectionBoard(clear_grace_s=1.0)
    board.apply(_frame([_det()]), now=0.0)

    assert board.tick(now=0.5) is False
    assert board.tick(now=1.5) is True
    assert board.boxes == []
    assert board.tick(now=2.0) is False


def test_error_clears_immediately(log_messages) -> None:
    board = DetectionBoard()
    board.apply(_frame([_det()]), now=0.0)

    board.on_error(ValueError("bad"))

    assert board.boxes == []
    assert any("clearing boxes" in m for m in log_messages)


def test_load_labels(tmp_path) -> None:
    path = tmp_path / "labels.txt"
    path.write_text("cat\ndog\n\n", encoding="utf-8")

    assert load_labels(str(path)) == ["cat", "dog"]


def test_load_labels_empty_file(tmp_path) -> None:
    path = tmp_path / "labels.txt"
    path.write_text("", encoding="utf-8")

    assert load_labels(str(path)) == ["unknown"]


@pytest.mark.parametrize("class_id,expected", [(0, "person"), (79, "toothbrush"), (80, "class_80"), (-1, "class_-1")])
def test_label_for(class_id, expected) -> None:
    assert len(COCO_LABELS) == 80
    assert label_for(class_id, COCO_LABELS) == expected
