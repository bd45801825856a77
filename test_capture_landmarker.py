# =============================================================================
# test_capture_landmarker.py — OpenCV capture provider and MediaPipe detector
# Exercises the failure paths, which need no camera or model file.
# Run: pytest test_capture_landmarker.py
# =============================================================================

import numpy as np
import pytest

pytest.importorskip("cv2")
pytest.importorskip("mediapipe")

from camera.capture import CameraCapture
from rehab_engine.errors import DetectionError, PermissionDenied
from rehab_engine.face_landmarker import DetectorState, MediaPipeFaceDetector


def test_unopenable_source_is_permission_denied(tmp_path):
    provider = CameraCapture(source=str(tmp_path / "missing.mp4"))
    with pytest.raises(PermissionDenied):
        provider.acquire()


def test_missing_model_fails_and_detect_raises(tmp_path):
    detector = MediaPipeFaceDetector(model_path=str(tmp_path / "missing.task"))

    state = detector.acquire()

    assert state is DetectorState.FAILED
    assert detector.error
    with pytest.raises(DetectionError):
        detector.detect(np.zeros((8, 8, 3), dtype=np.uint8), 0.0)


def test_reference_counting(tmp_path):
    detector = MediaPipeFaceDetector(model_path=str(tmp_path / "missing.task"))
    detector.acquire()
    detector.acquire()
    assert detector.ref_count == 2
    detector.release()
    detector.release()
    detector.release()
    assert detector.ref_count == 0


def test_unloaded_detector_refuses_detection():
    detector = MediaPipeFaceDetector()
    assert detector.state is DetectorState.UNLOADED
    with pytest.raises(DetectionError):
        detector.detect(np.zeros((8, 8, 3), dtype=np.uint8), 0.0)
