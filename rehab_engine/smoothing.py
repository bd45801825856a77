# =============================================================================
# rehab_engine/smoothing.py
#
# Exponential interpolation between the previously emitted frame and a new
# raw frame from the detector:
#
#   smoothed = prev + (raw − prev) · factor
#
# Pose and gaze use POSE_SMOOTHING, each eye landmark LANDMARK_SMOOTHING.
# With a constant input the residual shrinks by (1 − factor) per tick, so at
# factor 0.5 a step of size 1 is inside 1e-3 after 10 ticks.
#
# Only the detector path is smoothed; synthetic frames are already
# temporally coherent and bypass this stage.
# =============================================================================

from dataclasses import replace
from typing import Optional

from config import POSE_SMOOTHING, LANDMARK_SMOOTHING
from rehab_engine.data_structures import (
    Frame, EyeLandmarkSet, Point, TrackerState,
)

POSE_FIELDS = ("yaw", "pitch", "roll", "gaze_x", "gaze_y")


def lerp(start: float, end: float, factor: float) -> float:
    return start + (end - start) * factor


def lerp_point(start: Point, end: Point, factor: float) -> Point:
    return Point(lerp(start.x, end.x, factor), lerp(start.y, end.y, factor))


def smooth_eye(
    prev: Optional[EyeLandmarkSet],
    curr: Optional[EyeLandmarkSet],
    factor: float,
) -> Optional[EyeLandmarkSet]:
    """Interpolate every landmark point; a missing side passes the other through."""
    if prev is None or curr is None:
        return curr
    return EyeLandmarkSet(**{
        name: lerp_point(getattr(prev, name), getattr(curr, name), factor)
        for name in EyeLandmarkSet.POINT_NAMES
    })


class SmoothingFilter:
    """
    Stateless operator over a TrackerState owned by the caller.

    Usage:
        smoother = SmoothingFilter()
        frame    = smoother.apply(state, raw_frame)
    """

    def __init__(
        self,
        pose_factor: float = POSE_SMOOTHING,
        landmark_factor: float = LANDMARK_SMOOTHING,
    ):
        self.pose_factor = pose_factor
        self.landmark_factor = landmark_factor

    def apply(self, state: TrackerState, raw: Frame) -> Frame:
        prev = state.prev_frame
        if prev is None:
            return raw

        pose = {
            name: lerp(getattr(prev, name), getattr(raw, name), self.pose_factor)
            for name in POSE_FIELDS
        }
        return replace(
            raw,
            left_eye=smooth_eye(prev.left_eye, raw.left_eye, self.landmark_factor),
            right_eye=smooth_eye(prev.right_eye, raw.right_eye, self.landmark_factor),
            **pose,
        )
