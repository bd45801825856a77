# =============================================================================
# rehab_engine/scoring.py
#
# Per-exercise scoring strategies. Each one is called once per 100 ms
# session tick with the latest frame and updates the running counters in
# SessionState:
#
#   FOLLOW_DOT      score += 1 while frame.confidence > 0.5
#                   (the on-screen target hops every ~2 s; the scorer only
#                   gates on confidence, gaze-vs-target is not compared)
#
#   BLINK_TRAINING  score = blink_count
#
#   HEAD_STABILITY  deviation = |yaw| + |pitch|
#                   deviation > 5°  → stability −= 0.2   (floor 0)
#                   otherwise       → stability += 0.05  (cap 100)
#                   Recovery is 4× slower than decay.
# =============================================================================

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from config import (
    FOLLOW_DOT_MIN_CONFIDENCE, FOLLOW_DOT_MOVE_TICKS,
    HEAD_DEVIATION_TOLERANCE, HEAD_STABILITY_DECAY, HEAD_STABILITY_RECOVERY,
)
from rehab_engine.data_structures import ExerciseKind, Frame, SessionPhase


@dataclass
class SessionState:
    """Running counters of one exercise session."""
    exercise_kind: ExerciseKind
    duration_seconds: int
    phase: SessionPhase = SessionPhase.IDLE
    time_left_seconds: int = 0
    score: float = 0.0
    blink_count: int = 0
    head_stability_score: float = 100.0

    def __post_init__(self):
        if self.time_left_seconds == 0:
            self.time_left_seconds = self.duration_seconds

    @property
    def elapsed_seconds(self) -> int:
        return self.duration_seconds - self.time_left_seconds

    def reset(self) -> None:
        self.phase = SessionPhase.IDLE
        self.time_left_seconds = self.duration_seconds
        self.score = 0.0
        self.blink_count = 0
        self.head_stability_score = 100.0


class ExerciseScorer:
    kind: ExerciseKind

    def reset(self) -> None:
        pass

    def on_tick(self, state: SessionState, frame: Frame) -> None:
        raise NotImplementedError


class FollowDotScorer(ExerciseScorer):
    """Moves the visual target and counts confident ticks."""

    kind = ExerciseKind.FOLLOW_DOT

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = rng if rng is not None else np.random.default_rng()
        self.reset()

    def reset(self) -> None:
        # Target position in percent of the viewport
        self.target: Tuple[float, float] = (50.0, 50.0)
        self.move_timer = 0
        self.target_moves = 0

    def _move_target(self) -> None:
        self.target = (
            10.0 + self._rng.random() * 80.0,
            15.0 + self._rng.random() * 70.0,
        )
        self.target_moves += 1

    def on_tick(self, state: SessionState, frame: Frame) -> None:
        if self.move_timer > FOLLOW_DOT_MOVE_TICKS:
            self._move_target()
            self.move_timer = 0
        else:
            self.move_timer += 1

        if frame.confidence > FOLLOW_DOT_MIN_CONFIDENCE:
            state.score += 1


class BlinkTrainingScorer(ExerciseScorer):
    kind = ExerciseKind.BLINK_TRAINING

    def on_tick(self, state: SessionState, frame: Frame) -> None:
        state.score = state.blink_count


class HeadStabilityScorer(ExerciseScorer):
    kind = ExerciseKind.HEAD_STABILITY

    def on_tick(self, state: SessionState, frame: Frame) -> None:
        deviation = abs(frame.yaw) + abs(frame.pitch)
        if deviation > HEAD_DEVIATION_TOLERANCE:
            state.head_stability_score = max(0.0, state.head_stability_score - HEAD_STABILITY_DECAY)
        else:
            state.head_stability_score = min(100.0, state.head_stability_score + HEAD_STABILITY_RECOVERY)


def make_scorer(kind: ExerciseKind, rng: Optional[np.random.Generator] = None) -> ExerciseScorer:
    if kind is ExerciseKind.FOLLOW_DOT:
        return FollowDotScorer(rng)
    if kind is ExerciseKind.BLINK_TRAINING:
        return BlinkTrainingScorer()
    return HeadStabilityScorer()
