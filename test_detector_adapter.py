# =============================================================================
# test_detector_adapter.py — Detection → Frame conversion
# Run: pytest test_detector_adapter.py
# =============================================================================

import numpy as np
import pytest

from conftest import FakeDetector, make_detection
from rehab_engine.data_structures import Frame, TrackerState
from rehab_engine.detector_adapter import (
    DetectorAdapter, detection_to_frame, estimate_head_pose, is_blink,
)
from rehab_engine.errors import DetectionError

IMAGE = np.zeros((4, 4, 3), dtype=np.uint8)


@pytest.mark.parametrize("left,right,expected", [
    (0.6, 0.6, True),     # strong
    (0.9, 0.15, True),    # strong despite asymmetry
    (0.3, 0.3, True),     # subtle, symmetric
    (0.45, 0.05, False),  # one eye barely moving
    (0.35, 0.1, False),   # too asymmetric for subtle
    (0.15, 0.15, False),  # below subtle threshold
])
def test_blink_rules(left, right, expected):
    assert is_blink(left, right) is expected


def test_head_pose_from_offsets():
    det = make_detection(nose=(0.55, 0.6), lid_y=0.4)
    yaw, pitch = estimate_head_pose(det.landmarks)
    assert yaw == pytest.approx(10.0)
    assert pitch == pytest.approx(20.0)


def test_detection_to_frame():
    f = detection_to_frame(make_detection(nose=(0.55, 0.6), blink=(0.7, 0.6)))
    assert f.eye_openness_left == pytest.approx(0.3)
    assert f.eye_openness_right == pytest.approx(0.4)
    assert f.gaze_x == pytest.approx(0.1)
    assert f.gaze_y == pytest.approx(0.2)
    assert f.roll == 0.0
    assert f.confidence == pytest.approx(0.99)
    assert f.blink_detected is True
    assert f.left_eye.pupil.x == pytest.approx(0.42)


def test_missing_blendshapes_mean_open_eyes():
    det = make_detection()
    det = type(det)(landmarks=det.landmarks, blendshape_scores={})
    f = detection_to_frame(det)
    assert f.eye_openness_left == 1.0
    assert f.blink_detected is False


def test_no_packet_degrades_previous_frame():
    prev = Frame(yaw=7.0, confidence=0.99)
    state = TrackerState(prev_frame=prev)
    out = DetectorAdapter(FakeDetector()).process(state, None, 0.0)
    assert out.yaw == 7.0
    assert out.confidence == 0.0


def test_duplicate_capture_is_skipped():
    detector = FakeDetector()
    adapter = DetectorAdapter(detector)
    prev = Frame(yaw=3.0, confidence=0.99)
    state = TrackerState(prev_frame=prev, last_capture_ts=5.0)

    out = adapter.process(state, (5.0, IMAGE), 100.0)

    assert out is prev
    assert detector.calls == []


def test_new_capture_is_detected():
    detector = FakeDetector([make_detection(nose=(0.55, 0.6))])
    adapter = DetectorAdapter(detector)
    state = TrackerState()

    out = adapter.process(state, (1.0, IMAGE), 64.0)

    assert detector.calls == [64.0]
    assert state.last_capture_ts == 1.0
    assert out.yaw == pytest.approx(10.0)


def test_no_face_keeps_pose_with_low_confidence():
    adapter = DetectorAdapter(FakeDetector([None]))
    state = TrackerState(prev_frame=Frame(yaw=4.0, blink_detected=True, confidence=0.99))

    out = adapter.process(state, (1.0, IMAGE), 0.0)

    assert out.yaw == 4.0
    assert out.confidence == pytest.approx(0.3)
    assert out.blink_detected is False
    assert adapter.no_face_frames == 1


def test_detection_error_reemits_previous_frame():
    adapter = DetectorAdapter(FakeDetector([DetectionError("boom")]))
    prev = Frame(yaw=2.0, confidence=0.99)
    state = TrackerState(prev_frame=prev)

    out = adapter.process(state, (1.0, IMAGE), 0.0)

    assert out is prev
    assert adapter.failures == 1
