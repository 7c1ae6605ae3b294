"""Tests covering the detection wire format decoder."""

import json

import pytest

from rtc_infer.errors import DetectionDecodeError
from rtc_infer.protocol.detections import (
    DetectionProtocolParser,
    MessageKind,
    split_objects,
)


def _det(i: int) -> dict:
    return {
        "x": 10.0 + i,
        "y": 20.0,
        "width": 30.0,
        "height": 40.0,
        "confidence": 0.9,
        "class_id": i % 80,
        "class_name": f"c{i}",
    }


@pytest.mark.parametrize("n", [0, 1, 5, 200])
def test_split_objects_recovers_every_object(n: int) -> None:
    objs = [json.dumps(_det(i)) for i in range(n)]
    message = "[" + ", ".join(objs) + "]"

    spans = split_objects(message.strip("[]"))

    assert len(spans) == n
    assert [s.strip() for s in spans] == objs


def test_split_objects_keeps_nested_objects_whole() -> None:
    body = '{"a": {"b": {"c": 1}}}, {"d": 2}'

    assert split_objects(body) == ['{"a": {"b": {"c": 1}}}', '{"d": 2}']


def test_split_objects_ignores_stray_closing_brace() -> None:
    assert split_objects('}{"a": 1}') == ['{"a": 1}']


def test_parse_array_in_wire_order() -> None:
    dets = [_det(3), _det(1), _det(2)]
    frame = DetectionProtocolParser().parse(json.dumps(dets).encode("utf-8"))

    assert frame.kind is MessageKind.DETECTIONS
    assert [d.x for d in frame] == [13.0, 11.0, 12.0]
    assert frame.detections[0].class_name == "c3"


def test_parse_leading_whitespace_array() -> None:
    frame = DetectionProtocolParser().parse(b"  \n[" + json.dumps(_det(0)).encode() + b"]")

    assert len(frame) == 1


def test_classification_overrides_flat_fields() -> None:
    obj = _det(0)
    obj["classification"] = {"class_id": 7, "class_name": "truck", "confidence": 0.55}
    frame = DetectionProtocolParser().parse(json.dumps([obj]))

    det = frame.detections[0]
    assert det.effective_class_id == 7
    assert det.effective_class_name == "truck"
    assert det.effective_confidence == pytest.approx(0.55)
    # flat fields are still there, just not authoritative
    assert det.class_name == "c0"


def test_classification_with_null_name_reads_unknown() -> None:
    obj = _det(0)
    obj["classification"] = {"class_id": 4, "class_name": None, "confidence": 0.3}
    det = DetectionProtocolParser().parse(json.dumps([obj])).detections[0]

    assert det.effective_class_name == "unknown"
    assert det.effective_class_id == 4


def test_classification_with_empty_name_reads_unknown() -> None:
    obj = _det(0)
    obj["classification"] = {"class_id": 4, "class_name": "", "confidence": 0.3}
    det = DetectionProtocolParser().parse(json.dumps([obj])).detections[0]

    assert det.effective_class_name == "unknown"


def test_null_classification_still_takes_precedence() -> None:
    obj = _det(0)
    obj["classification"] = None
    det = DetectionProtocolParser().parse(json.dumps([obj])).detections[0]

    assert det.classification is not None
    assert det.effective_class_name == "unknown"
    assert det.effective_class_id == 0
    assert det.effective_confidence == 0.0


def test_without_classification_flat_fields_win() -> None:
    det = DetectionProtocolParser().parse(json.dumps([_det(2)])).detections[0]

    assert det.classification is None
    assert det.effective_class_name == "c2"
    assert det.effective_confidence == pytest.approx(0.9)


def test_missing_class_name_reads_unknown() -> None:
    obj = _det(0)
    del obj["class_name"]
    det = DetectionProtocolParser().parse(json.dumps([obj])).detections[0]

    assert det.class_name == "unknown"


def test_bad_object_is_skipped_rest_survives(log_messages) -> None:
    message = "[" + json.dumps(_det(0)) + ", {not json}, " + json.dumps(_det(1)) + "]"
    frame = DetectionProtocolParser().parse(message)

    assert [d.x for d in frame] == [10.0, 11.0]
    assert frame.skipped == 1
    assert any("skipping detection 1" in m for m in log_messages)


def test_unterminated_trailing_object_is_skipped(log_messages) -> None:
    assert split_objects('{"x": 1}, {"x": 2') == ['{"x": 1}', '{"x": 2']

    frame = DetectionProtocolParser().parse('[{"x": 1}, {"x": 2, "y": {"z": 3}')

    assert [d.x for d in frame] == [1.0]
    assert frame.skipped == 1
    assert any("skipping detection 1" in m for m in log_messages)


def test_object_with_wrong_field_type_is_skipped() -> None:
    bad = _det(0)
    bad["x"] = "left"
    frame = DetectionProtocolParser().parse(json.dumps([bad, _det(1)]))

    assert len(frame) == 1
    assert frame.skipped == 1


def test_coordinates_are_not_scaled() -> None:
    obj = {"x": 1919.5, "y": 1079.0, "width": 2.0, "height": 3.0, "confidence": 1.0, "class_id": 0}
    det = DetectionProtocolParser().parse(json.dumps([obj])).detections[0]

    assert (det.x, det.y, det.width, det.height) == (1919.5, 1079.0, 2.0, 3.0)


def test_execution_time_carried_on_detection() -> None:
    obj = _det(0)
    obj["execution_time"] = 0.021
    det = DetectionProtocolParser().parse(json.dumps([obj])).detections[0]

    assert det.execution_time == pytest.approx(0.021)


def test_parser_does_not_cap() -> None:
    frame = DetectionProtocolParser().parse(json.dumps([_det(i) for i in range(250)]))

    assert len(frame) == 250


def test_control_message_is_ignored() -> None:
    frame = DetectionProtocolParser().parse(b'{"msg": "hello from server"}')

    assert frame.kind is MessageKind.CONTROL
    assert len(frame) == 0


def test_empty_array_is_a_detection_message() -> None:
    frame = DetectionProtocolParser().parse(b"[]")

    assert frame.kind is MessageKind.DETECTIONS
    assert len(frame) == 0


def test_unrecognised_message_raises() -> None:
    with pytest.raises(DetectionDecodeError):
        DetectionProtocolParser().parse(b'{"status": "ok"}')


def test_invalid_utf8_raises() -> None:
    with pytest.raises(DetectionDecodeError):
        DetectionProtocolParser().parse(b"\xff\xfe[")
