# =============================================================================
# rehab_engine/detector_adapter.py
#
# DetectorAdapter — turns one external detection (landmarks + blendshape
# scores) into a raw Frame with the same shape the Synthetic Generator
# produces. Smoothing happens afterwards, in the scheduler.
#
# Per call:
#   1. No capture stream / no image yet → previous frame, confidence 0
#   2. Capture reports the same frame as last time → previous frame,
#      untouched, no side effects
#   3. Detector raises DetectionError → logged, previous frame untouched
#   4. No face → previous frame, confidence 0.3, blink forced False
#   5. Face → raw Frame
#
# Blink decision from the eyeBlinkLeft / eyeBlinkRight blendshapes:
#   strong: mean > 0.5
#   subtle: mean > 0.2 and |L − R| < 0.2 and L > 0.1 and R > 0.1
#   blink = strong or subtle
#
# Head pose from landmark offsets (normalized image units · 200 → degrees):
#   yaw   = (nose.x − mid(cheek_L.x, cheek_R.x)) · 200
#   pitch = (nose.y − mid(upper_lid_L.y, upper_lid_R.y) − 0.1) · 200
# =============================================================================

from dataclasses import replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from config import (
    NOSE_TIP_IDX, LEFT_CHEEK_IDX, RIGHT_CHEEK_IDX,
    LEFT_EYE_LANDMARK_IDX, RIGHT_EYE_LANDMARK_IDX,
    HEAD_POSE_SCALE, PITCH_NEUTRAL_OFFSET,
    DETECTED_CONFIDENCE, NO_FACE_CONFIDENCE, NO_CAPTURE_CONFIDENCE,
    DETECTED_MOUTH_SYMMETRY,
    BLINK_STRONG_THRESH, BLINK_SUBTLE_THRESH,
    BLINK_SUBTLE_MAX_DIFF, BLINK_SUBTLE_MIN_EYE,
)
from rehab_engine.data_structures import (
    Frame, EyeLandmarkSet, Point, DetectionResult, TrackerState, DEFAULT_FRAME,
)
from rehab_engine.errors import DetectionError
from core.logger import get_logger

log = get_logger(__name__)


# ── Pure conversions ──────────────────────────────────────────────────────────

def is_blink(left: float, right: float) -> bool:
    """Union of the strong and subtle blink rules."""
    avg = (left + right) / 2.0
    strong = avg > BLINK_STRONG_THRESH
    subtle = (
        avg > BLINK_SUBTLE_THRESH
        and abs(left - right) < BLINK_SUBTLE_MAX_DIFF
        and left > BLINK_SUBTLE_MIN_EYE
        and right > BLINK_SUBTLE_MIN_EYE
    )
    return strong or subtle


def estimate_head_pose(landmarks: Sequence[Tuple[float, float]]) -> Tuple[float, float]:
    """Return (yaw, pitch) in degrees from normalized landmark offsets."""
    nose = landmarks[NOSE_TIP_IDX]
    cheek_mid_x = (landmarks[LEFT_CHEEK_IDX][0] + landmarks[RIGHT_CHEEK_IDX][0]) / 2.0
    eyes_mid_y = (
        landmarks[LEFT_EYE_LANDMARK_IDX["upper_lid"]][1]
        + landmarks[RIGHT_EYE_LANDMARK_IDX["upper_lid"]][1]
    ) / 2.0

    yaw = (nose[0] - cheek_mid_x) * HEAD_POSE_SCALE
    pitch = (nose[1] - eyes_mid_y - PITCH_NEUTRAL_OFFSET) * HEAD_POSE_SCALE
    return yaw, pitch


def extract_eye(landmarks: Sequence[Tuple[float, float]], idx: Dict[str, int]) -> EyeLandmarkSet:
    return EyeLandmarkSet(**{
        name: Point(*landmarks[i]) for name, i in idx.items()
    })


def detection_to_frame(result: DetectionResult) -> Frame:
    """Convert one face detection to an unsmoothed Frame."""
    lm = result.landmarks
    scores = result.blendshape_scores
    blink_left = scores.get("eyeBlinkLeft", 0.0)
    blink_right = scores.get("eyeBlinkRight", 0.0)

    yaw, pitch = estimate_head_pose(lm)
    nose = lm[NOSE_TIP_IDX]

    return Frame(
        yaw=yaw,
        pitch=pitch,
        roll=0.0,
        eye_openness_left=float(np.clip(1.0 - blink_left, 0.0, 1.0)),
        eye_openness_right=float(np.clip(1.0 - blink_right, 0.0, 1.0)),
        mouth_symmetry=DETECTED_MOUTH_SYMMETRY,
        gaze_x=float(np.clip((nose[0] - 0.5) * 2, -1.0, 1.0)),
        gaze_y=float(np.clip((nose[1] - 0.5) * 2, -1.0, 1.0)),
        blink_detected=is_blink(blink_left, blink_right),
        confidence=DETECTED_CONFIDENCE,
        left_eye=extract_eye(lm, LEFT_EYE_LANDMARK_IDX),
        right_eye=extract_eye(lm, RIGHT_EYE_LANDMARK_IDX),
    )


# ── Adapter ───────────────────────────────────────────────────────────────────

class DetectorAdapter:
    """
    Bridges a Detector Capability (anything with
    ``detect(image, timestamp_ms) -> DetectionResult | None``) to the frame
    pipeline. Holds no frame history itself: the previous frame and the
    last capture timestamp live in the caller's TrackerState.

    Usage:
        adapter = DetectorAdapter(detector)
        raw     = adapter.process(state, packet, t_ms)
    """

    def __init__(self, detector):
        self.detector = detector
        self.failures = 0
        self.no_face_frames = 0

    def process(
        self,
        state: TrackerState,
        packet: Optional[Tuple[float, np.ndarray]],
        t_ms: float,
    ) -> Frame:
        """
        Args:
            state:  Pipeline state (prev_frame, last_capture_ts are read/written).
            packet: (capture_ts, image) from the capture stream, or None.
            t_ms:   Tick time, forwarded to the detector as its timestamp.
        """
        prev = state.prev_frame if state.prev_frame is not None else DEFAULT_FRAME

        if packet is None:
            return replace(prev, confidence=NO_CAPTURE_CONFIDENCE)

        capture_ts, image = packet
        if capture_ts == state.last_capture_ts:
            return prev
        state.last_capture_ts = capture_ts

        try:
            result = self.detector.detect(image, t_ms)
        except DetectionError as e:
            self.failures += 1
            log.error(f"Inference error: {e}", exc_info=True)
            return prev

        if result is None:
            self.no_face_frames += 1
            log.debug("No face found; emitting degraded frame.")
            return replace(prev, confidence=NO_FACE_CONFIDENCE, blink_detected=False)

        return detection_to_frame(result)
