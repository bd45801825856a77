# =============================================================================
# rehab_engine/face_landmarker.py
#
# MediaPipeFaceDetector — the concrete Detector Capability behind the
# DetectorAdapter. Wraps the MediaPipe FaceLandmarker (Tasks API) in VIDEO
# running mode with blendshape output enabled.
#
# The model is an explicitly owned, reference-counted resource:
#
#     UNLOADED ──acquire()──→ LOADING ──→ READY
#                                   └───→ FAILED
#     READY ──release() by last holder──→ UNLOADED
#
# detect() raises DetectionError whenever the model is not READY or the
# library call fails, and returns None when no face is in the image.
# =============================================================================

import threading
from enum import Enum
from typing import Optional

import cv2
import numpy as np
import mediapipe as mp
from mediapipe.tasks.python import BaseOptions, vision

from config import (
    FACE_LANDMARKER_MODEL_PATH,
    MP_NUM_FACES, MP_MIN_DETECTION_CONF, MP_MIN_TRACKING_CONF,
)
from rehab_engine.data_structures import DetectionResult
from rehab_engine.errors import DetectionError
from core.logger import get_logger

log = get_logger(__name__)


class DetectorState(Enum):
    UNLOADED = "UNLOADED"
    LOADING  = "LOADING"
    READY    = "READY"
    FAILED   = "FAILED"


class MediaPipeFaceDetector:
    """
    Usage:
        detector = MediaPipeFaceDetector()
        detector.acquire()
        result = detector.detect(frame_bgr, timestamp_ms)   # DetectionResult | None
        detector.release()
    """

    def __init__(self, model_path: str = FACE_LANDMARKER_MODEL_PATH):
        self.model_path = model_path
        self._landmarker = None
        self._refs = 0
        self._lock = threading.Lock()
        self.state = DetectorState.UNLOADED
        self.error: Optional[str] = None
        self._last_ts = -1

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def acquire(self) -> DetectorState:
        """Take a reference; the first holder loads the model."""
        with self._lock:
            self._refs += 1
            if self.state in (DetectorState.UNLOADED, DetectorState.FAILED):
                self._load()
            return self.state

    def release(self) -> None:
        """Drop a reference; the last holder closes the model."""
        with self._lock:
            if self._refs == 0:
                return
            self._refs -= 1
            if self._refs == 0 and self._landmarker is not None:
                self._landmarker.close()
                self._landmarker = None
                self.state = DetectorState.UNLOADED
                log.info("FaceLandmarker released.")

    def _load(self) -> None:
        self.state = DetectorState.LOADING
        log.info(f"Loading FaceLandmarker from {self.model_path} …")
        try:
            opts = vision.FaceLandmarkerOptions(
                base_options=BaseOptions(model_asset_path=self.model_path),
                running_mode=vision.RunningMode.VIDEO,
                num_faces=MP_NUM_FACES,
                output_face_blendshapes=True,
                min_face_detection_confidence=MP_MIN_DETECTION_CONF,
                min_tracking_confidence=MP_MIN_TRACKING_CONF,
            )
            self._landmarker = vision.FaceLandmarker.create_from_options(opts)
        except Exception as e:
            self.state = DetectorState.FAILED
            self.error = str(e)
            log.error(f"Failed to load FaceLandmarker: {e}", exc_info=True)
            return

        self.state = DetectorState.READY
        self.error = None
        self._last_ts = -1
        log.info("FaceLandmarker ready (478 landmarks + blendshapes).")

    @property
    def ref_count(self) -> int:
        return self._refs

    # ── Detection ─────────────────────────────────────────────────────────────

    def detect(self, frame_bgr: np.ndarray, timestamp_ms: float) -> Optional[DetectionResult]:
        """
        Run the landmarker on one BGR frame.

        Returns:
            DetectionResult for the first face, or None when no face was found.

        Raises:
            DetectionError: model not ready, or inference failed.
        """
        if self.state is not DetectorState.READY:
            raise DetectionError(f"FaceLandmarker not ready ({self.state.value})")

        # VIDEO mode requires strictly increasing timestamps
        ts = max(int(timestamp_ms), self._last_ts + 1)
        self._last_ts = ts

        try:
            rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
            mp_img = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
            detection = self._landmarker.detect_for_video(mp_img, ts)
        except Exception as e:
            raise DetectionError(f"FaceLandmarker inference failed: {e}") from e

        if not detection.face_landmarks:
            return None

        landmarks = tuple((lm.x, lm.y) for lm in detection.face_landmarks[0])
        scores = {}
        if detection.face_blendshapes:
            for b in detection.face_blendshapes[0]:
                scores[b.category_name] = float(b.score)

        return DetectionResult(landmarks=landmarks, blendshape_scores=scores)
