# =============================================================================
# rehab_engine/session.py
#
# ExerciseSession — per-exercise state machine.
#
#         start()            countdown hits 0 / finish()
#   IDLE ─────────→ PLAYING ───────────────────────────→ FINISHED
#     ↑   ←──────────   │                                   │
#     │     pause()     │                                   │
#     └─────────────────┴──────────── restart() ────────────┘
#
# While PLAYING the session is clocked by the scheduler (advance(now_ms)):
#   • every 100 ms  → scoring tick against the latest frame
#   • every 1000 ms → countdown tick; reaching 0 finishes the session
# Ticks are replayed in time order, so a late advance() catches up exactly.
#
# On FINISHED all counters are frozen and the SessionAnalysis is built once.
# restart() zeroes the counters, re-arms the countdown and keeps the
# exercise kind, mode and profile.
# =============================================================================

from typing import Callable, List, Optional

import numpy as np

from config import DEFAULT_SESSION_SECONDS, SCORE_TICK_MS, COUNTDOWN_TICK_MS
from rehab_engine.data_structures import (
    ExerciseKind, Frame, PhysiologicalProfile, SessionAnalysis, SessionPhase,
    SourceMode, TrackerSnapshot, DEFAULT_FRAME,
)
from rehab_engine.scoring import SessionState, make_scorer
from rehab_engine.analysis import synthesize
from rehab_engine.errors import InvalidTransition
from core.logger import get_logger

log = get_logger(__name__)

START_PROMPTS = {
    ExerciseKind.FOLLOW_DOT:     "Follow the blue dot.",
    ExerciseKind.BLINK_TRAINING: "Starting blink training. Blink normally.",
    ExerciseKind.HEAD_STABILITY: "Keep your head perfectly still within the circle.",
}
FINISH_PROMPT = "Session complete. Analyzing clinical data."


class ExerciseSession:
    """
    Usage:
        session = ExerciseSession(ExerciseKind.HEAD_STABILITY, duration_seconds=30,
                                  mode=SourceMode.REAL)
        scheduler.subscribe(session.on_frame)
        scheduler.on_tick(session.advance)
        session.start(now_ms)
        ...
        session.analysis   # SessionAnalysis once FINISHED
    """

    def __init__(
        self,
        exercise_kind: ExerciseKind,
        duration_seconds: int = DEFAULT_SESSION_SECONDS,
        mode: SourceMode = SourceMode.DEMO,
        profile: PhysiologicalProfile = PhysiologicalProfile.HEALTHY,
        rng: Optional[np.random.Generator] = None,
        announcer=None,
    ):
        if duration_seconds <= 0:
            raise ValueError("Session duration must be positive")

        self.state = SessionState(exercise_kind, duration_seconds)
        self.scorer = make_scorer(exercise_kind, rng)
        self.mode = mode
        self.profile = profile
        self.announcer = announcer

        self.latest_frame: Frame = DEFAULT_FRAME
        self.analysis: Optional[SessionAnalysis] = None
        self._next_score_ms = 0.0
        self._next_second_ms = 0.0
        self._finish_listeners: List[Callable[[SessionAnalysis], None]] = []

        log.info(f"ExerciseSession created ({exercise_kind.value}, {duration_seconds}s, "
                 f"mode={mode.value}, profile={profile.value})")

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    @property
    def exercise_kind(self) -> ExerciseKind:
        return self.state.exercise_kind

    @property
    def is_playing(self) -> bool:
        return self.state.phase is SessionPhase.PLAYING

    def on_finished(self, callback: Callable[[SessionAnalysis], None]) -> None:
        self._finish_listeners.append(callback)

    # ── Transitions ───────────────────────────────────────────────────────────

    def start(self, now_ms: float) -> None:
        """IDLE → PLAYING. Resumes from the remaining time after a pause."""
        if self.state.phase is not SessionPhase.IDLE:
            raise InvalidTransition(self.state.phase, "start")

        self.state.phase = SessionPhase.PLAYING
        self._next_score_ms = now_ms + SCORE_TICK_MS
        self._next_second_ms = now_ms + COUNTDOWN_TICK_MS
        self._announce(START_PROMPTS[self.exercise_kind])
        log.info(f"Session PLAYING ({self.state.time_left_seconds}s left)")

    def pause(self) -> None:
        """PLAYING → IDLE, counters kept."""
        if self.state.phase is not SessionPhase.PLAYING:
            raise InvalidTransition(self.state.phase, "pause")
        self.state.phase = SessionPhase.IDLE
        log.info(f"Session paused ({self.state.time_left_seconds}s left)")

    def finish(self) -> SessionAnalysis:
        """PLAYING → FINISHED. Freezes counters and builds the analysis."""
        if self.state.phase is not SessionPhase.PLAYING:
            raise InvalidTransition(self.state.phase, "finish")

        self.state.phase = SessionPhase.FINISHED
        self.analysis = synthesize(self.state, self.mode, self.profile)
        log.info(f"Session FINISHED after {self.state.elapsed_seconds}s: "
                 f"{self.analysis.clinical_value} {self.analysis.clinical_unit} "
                 f"({self.analysis.status.value})")
        self._announce(FINISH_PROMPT)

        for callback in self._finish_listeners:
            callback(self.analysis)
        return self.analysis

    def restart(self) -> None:
        """Any phase → IDLE with fresh counters."""
        self.state.reset()
        self.scorer.reset()
        self.analysis = None
        log.info("Session restarted.")

    # ── Clocking ──────────────────────────────────────────────────────────────

    def on_frame(self, snapshot: TrackerSnapshot) -> None:
        """Frame listener: remember the frame, count blinks while playing."""
        self.latest_frame = snapshot.frame
        if self.is_playing and snapshot.blink_event:
            self.state.blink_count += 1

    def advance(self, now_ms: float) -> None:
        """Tick listener: replay every 100 ms / 1 s tick due by now_ms."""
        while self.is_playing:
            due_score = self._next_score_ms <= now_ms
            due_second = self._next_second_ms <= now_ms
            if not (due_score or due_second):
                return

            if due_score and self._next_score_ms <= self._next_second_ms:
                self.score_tick()
                self._next_score_ms += SCORE_TICK_MS
            else:
                self.countdown_tick()
                self._next_second_ms += COUNTDOWN_TICK_MS

    def score_tick(self) -> None:
        if self.is_playing:
            self.scorer.on_tick(self.state, self.latest_frame)

    def countdown_tick(self) -> None:
        if not self.is_playing:
            return
        if self.state.time_left_seconds <= 1:
            self.state.time_left_seconds = 0
            self.finish()
        else:
            self.state.time_left_seconds -= 1

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _announce(self, text: str) -> None:
        if self.announcer is not None:
            self.announcer.announce(text)

    def snapshot(self) -> dict:
        """HUD-friendly view of the session counters."""
        s = self.state
        data = {
            "exercise":           s.exercise_kind.value,
            "phase":              s.phase.value,
            "timeLeft":           s.time_left_seconds,
            "score":              round(s.score),
            "blinkCount":         s.blink_count,
            "headStabilityScore": round(s.head_stability_score, 2),
        }
        target = getattr(self.scorer, "target", None)
        if target is not None:
            data["target"] = {"x": target[0], "y": target[1]}
        return data
