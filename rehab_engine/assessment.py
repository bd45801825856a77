# =============================================================================
# rehab_engine/assessment.py
#
# GuidedAssessment — the fixed six-step screening sequence.
#
#   intro (5s) → calibration (3s) → eye_track (10s) → face_sym (8s)
#              → head_stab (8s) → complete (3s, "Analyzing Data")
#
# A running score starts at the 70 baseline and is updated once per second
# while a measuring step is active:
#     confidence > 0.8  → score = min(100, score + 0.1)
#     otherwise         → score = max(0,   score − 0.5)
#
# Every published frame samples the running score into the current step.
# Domain scores are the mean of their step's samples; overall is the mean
# of the three domains. The analyzing step does no scoring and completes
# the assessment when its time runs out.
# =============================================================================

import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from config import (
    COUNTDOWN_TICK_MS,
    ASSESSMENT_BASELINE_SCORE, ASSESSMENT_MIN_CONFIDENCE,
    ASSESSMENT_GAIN, ASSESSMENT_PENALTY,
)
from rehab_engine.data_structures import AssessmentResult, Frame, TrackerSnapshot, DEFAULT_FRAME
from rehab_engine.errors import RehabError
from core.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class AssessmentStep:
    id: str
    title: str
    duration_seconds: int
    prompt: str
    # AssessmentResult field fed by this step, if any
    domain: Optional[str] = None


ASSESSMENT_STEPS = (
    AssessmentStep("intro", "Prepare for Assessment", 5,
                   "Ensure your face is well-lit and centered. Remove glasses if possible."),
    AssessmentStep("calibration", "Calibration", 3,
                   "Look straight at the camera and hold still."),
    AssessmentStep("eye_track", "Oculomotor Control", 10,
                   "Follow the green dot with your eyes without moving your head.",
                   domain="eye_control_score"),
    AssessmentStep("face_sym", "Facial Symmetry", 8,
                   "Smile widely, then relax. Raise your eyebrows.",
                   domain="face_symmetry_score"),
    AssessmentStep("head_stab", "Head Stability", 8,
                   "Keep your head perfectly still while focusing on the center.",
                   domain="head_mobility_score"),
    AssessmentStep("complete", "Analyzing Data", 3,
                   "Processing your results..."),
)

STATUS_COMPLETE   = "Complete"
STATUS_INCOMPLETE = "Incomplete"


class GuidedAssessment:
    """
    Usage:
        assessment = GuidedAssessment(announcer=announcer)
        assessment.on_complete(lambda result: ...)
        scheduler.subscribe(assessment.on_frame)
        scheduler.on_tick(assessment.advance)
        assessment.start(now_ms)
    """

    def __init__(self, announcer=None, steps=ASSESSMENT_STEPS):
        self.steps = tuple(steps)
        self.announcer = announcer
        self.result: Optional[AssessmentResult] = None
        self._listeners: List[Callable[[AssessmentResult], None]] = []
        self._reset()

    def _reset(self) -> None:
        self.step_index = 0
        self.time_left_seconds = self.steps[0].duration_seconds
        self.score = ASSESSMENT_BASELINE_SCORE
        self.running = False
        self.latest_frame: Frame = DEFAULT_FRAME
        self._samples: Dict[str, List[float]] = {s.id: [] for s in self.steps}
        self._next_second_ms = 0.0

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def current_step(self) -> AssessmentStep:
        return self.steps[self.step_index]

    @property
    def is_analyzing(self) -> bool:
        return self.step_index == len(self.steps) - 1

    def on_complete(self, callback: Callable[[AssessmentResult], None]) -> None:
        self._listeners.append(callback)

    # ── Transitions ───────────────────────────────────────────────────────────

    def start(self, now_ms: float) -> None:
        if self.running:
            raise RehabError("Assessment already running")
        self._reset()
        self.result = None
        self.running = True
        self._next_second_ms = now_ms + COUNTDOWN_TICK_MS
        log.info("Guided assessment started.")
        self._enter_step(0)

    def cancel(self) -> AssessmentResult:
        """Stop early; the result is marked Incomplete."""
        if not self.running:
            raise RehabError("Assessment is not running")
        log.info(f"Assessment cancelled during '{self.current_step.id}'.")
        return self._complete(STATUS_INCOMPLETE)

    # ── Clocking ──────────────────────────────────────────────────────────────

    def on_frame(self, snapshot: TrackerSnapshot) -> None:
        self.latest_frame = snapshot.frame
        if self.running and not self.is_analyzing:
            self._samples[self.current_step.id].append(self.score)

    def advance(self, now_ms: float) -> None:
        while self.running and self._next_second_ms <= now_ms:
            self._next_second_ms += COUNTDOWN_TICK_MS
            self.second_tick()

    def second_tick(self) -> None:
        if not self.running:
            return

        if not self.is_analyzing:
            if self.latest_frame.confidence > ASSESSMENT_MIN_CONFIDENCE:
                self.score = min(100.0, self.score + ASSESSMENT_GAIN)
            else:
                self.score = max(0.0, self.score - ASSESSMENT_PENALTY)

        if self.time_left_seconds > 1:
            self.time_left_seconds -= 1
        elif self.is_analyzing:
            self._complete(STATUS_COMPLETE)
        else:
            self._enter_step(self.step_index + 1)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _enter_step(self, index: int) -> None:
        self.step_index = index
        step = self.steps[index]
        self.time_left_seconds = step.duration_seconds
        log.info(f"Assessment step {index + 1}/{len(self.steps)}: {step.title}")
        if self.announcer is not None:
            self.announcer.announce(step.prompt)

    def _step_score(self, step: AssessmentStep) -> Optional[float]:
        samples = self._samples[step.id]
        if not samples:
            return None
        return round(float(np.mean(samples)), 1)

    def _complete(self, status: str) -> AssessmentResult:
        self.running = False

        domains = {}
        step_scores = []
        for step in self.steps:
            value = self._step_score(step)
            if value is not None:
                step_scores.append(value)
            if step.domain is not None:
                domains[step.domain] = value

        measured = [v for v in domains.values() if v is not None]
        overall = round(float(np.mean(measured)), 1) if measured else 0.0

        self.result = AssessmentResult(
            id=uuid.uuid4().hex[:8],
            date=time.strftime("%Y-%m-%d %H:%M:%S"),
            overall_score=overall,
            status=status,
            step_scores=step_scores,
            **{name: (v if v is not None else 0.0) for name, v in domains.items()},
        )
        log.info(f"Assessment {status}: overall {overall}")

        for callback in self._listeners:
            callback(self.result)
        return self.result

    def snapshot(self) -> dict:
        step = self.current_step
        return {
            "step":       step.id,
            "title":      step.title,
            "stepNumber": self.step_index + 1,
            "stepCount":  len(self.steps),
            "timeLeft":   self.time_left_seconds,
            "score":      round(self.score, 1),
            "running":    self.running,
        }
