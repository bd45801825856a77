# =============================================================================
# rehab_engine/rehab_core.py
#
# RehabCore — single public interface of the rehab engine.
#
# Owns the frame pipeline (FrameScheduler + both frame sources), the current
# ExerciseSession or GuidedAssessment, and the report sinks. Everything that
# touches session or tracker state runs on the scheduler loop:
#
#   caller thread                     scheduler loop
#   ─────────────                     ──────────────
#   launch()/start()/pause()/…  ──→   Invoke → ExerciseSession transition
#   set_mode()/set_profile()    ──→   SetMode / SetProfile
#                                     tick → session.on_frame / advance
#                                          → frame listeners (HUD)
#                                     FINISHED → report sinks
#                                     stream ended → finish a PLAYING session
#
# Report sinks receive (SessionAnalysis, PatientDetails, score_history).
# =============================================================================

import threading
import time
from collections import deque
from typing import Callable, List, Optional, Union

import numpy as np

from config import (
    CAMERA_INDEX, FACE_LANDMARKER_MODEL_PATH,
    DEFAULT_SESSION_SECONDS, SCORE_HISTORY_LENGTH,
)
from rehab_engine.data_structures import (
    AssessmentResult, ExerciseKind, PatientDetails, PhysiologicalProfile,
    SessionAnalysis, SourceMode, TrackerSnapshot,
)
from rehab_engine.simulator import SyntheticGenerator
from rehab_engine.frame_source import SyntheticSource, DetectedSource
from rehab_engine.scheduler import FrameScheduler, SetMode, SetProfile, Invoke
from rehab_engine.analysis import round_half_up
from rehab_engine.session import ExerciseSession
from rehab_engine.assessment import GuidedAssessment
from rehab_engine.errors import RehabError
from core.logger import get_logger

log = get_logger(__name__)

ReportSink = Callable[[SessionAnalysis, PatientDetails, List[float]], None]


class RehabCore:
    """
    Single entry point for the rehab engine.

    Usage:
        core = RehabCore(mode=SourceMode.DEMO, profile=PhysiologicalProfile.LOW)
        core.add_report_sink(server.emit_analysis)
        core.start()

        core.launch(ExerciseKind.BLINK_TRAINING, duration_seconds=60)
        core.start_session()
        analysis = core.wait_for_analysis(timeout=70)

        core.stop()
    """

    def __init__(
        self,
        mode: SourceMode = SourceMode.DEMO,
        profile: PhysiologicalProfile = PhysiologicalProfile.HEALTHY,
        camera_source: Union[int, str] = CAMERA_INDEX,
        model_path: str = FACE_LANDMARKER_MODEL_PATH,
        seed: Optional[int] = None,
        announcer=None,
        patient: Optional[PatientDetails] = None,
        capture=None,
        detector=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        log.info("Initializing RehabCore …")

        self._rng = np.random.default_rng(seed)
        self._profile = profile
        self.announcer = announcer
        self.patient = patient or PatientDetails()

        if capture is None:
            from camera.capture import CameraCapture
            capture = CameraCapture(camera_source)
        if detector is None:
            from rehab_engine.face_landmarker import MediaPipeFaceDetector
            detector = MediaPipeFaceDetector(model_path)

        self._synthetic = SyntheticSource(SyntheticGenerator(profile, self._rng))
        self._detected = DetectedSource(capture, detector)
        self.scheduler = FrameScheduler(self._synthetic, self._detected, mode=mode, clock=clock)
        self.scheduler.subscribe(self._on_frame)
        self.scheduler.on_tick(self._on_tick)
        self.scheduler.on_exhausted(self._on_source_exhausted)

        self.session: Optional[ExerciseSession] = None
        self.assessment: Optional[GuidedAssessment] = None
        self.score_history: deque = deque(maxlen=SCORE_HISTORY_LENGTH)

        self._frame_listeners: List[Callable[[dict], None]] = []
        self._report_sinks: List[ReportSink] = []
        self._assessment_sinks: List[Callable[[AssessmentResult], None]] = []
        self._analysis_ready = threading.Event()
        self._assessment_ready = threading.Event()

        log.info("RehabCore initialized.")

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Run the scheduler loop on its background thread."""
        self.scheduler.start_background()
        log.info("RehabCore started.")

    def stop(self) -> None:
        """Stop the loop; the capture device is released before this returns."""
        self.scheduler.stop()
        log.info("RehabCore stopped.")

    # ── Wiring ────────────────────────────────────────────────────────────────

    def add_frame_listener(self, callback: Callable[[dict], None]) -> None:
        """callback(payload) for every published frame (HUD feed)."""
        self._frame_listeners.append(callback)

    def add_report_sink(self, sink: ReportSink) -> None:
        self._report_sinks.append(sink)

    def add_assessment_sink(self, sink: Callable[[AssessmentResult], None]) -> None:
        self._assessment_sinks.append(sink)

    @property
    def mode(self) -> SourceMode:
        return self.scheduler.mode

    @property
    def profile(self) -> PhysiologicalProfile:
        return self._profile

    # ── Commands (thread-safe, applied on the next tick) ──────────────────────

    def set_mode(self, mode: SourceMode) -> None:
        self.scheduler.submit(SetMode(mode))
        self.scheduler.submit(Invoke(self._sync_session))

    def set_profile(self, profile: PhysiologicalProfile) -> None:
        self._profile = profile
        self.scheduler.submit(SetProfile(profile))
        self.scheduler.submit(Invoke(self._sync_session))

    def launch(
        self,
        exercise_kind: ExerciseKind,
        duration_seconds: int = DEFAULT_SESSION_SECONDS,
    ) -> None:
        """Replace the current session with a fresh IDLE one."""
        if duration_seconds <= 0:
            raise ValueError("Session duration must be positive")
        self._analysis_ready.clear()
        self.scheduler.submit(Invoke(
            lambda now_ms: self._launch(exercise_kind, duration_seconds)
        ))

    def start_session(self) -> None:
        self._submit_transition("start", lambda s, now_ms: s.start(now_ms))

    def pause_session(self) -> None:
        self._submit_transition("pause", lambda s, now_ms: s.pause())

    def finish_session(self) -> None:
        self._submit_transition("finish", lambda s, now_ms: s.finish())

    def restart_session(self) -> None:
        self._analysis_ready.clear()
        self._submit_transition("restart", lambda s, now_ms: s.restart())

    def start_assessment(self) -> None:
        self._assessment_ready.clear()
        self.scheduler.submit(Invoke(self._start_assessment))

    def cancel_assessment(self) -> None:
        self.scheduler.submit(Invoke(self._cancel_assessment))

    # ── Waiting ───────────────────────────────────────────────────────────────

    def wait_for_analysis(self, timeout: Optional[float] = None) -> Optional[SessionAnalysis]:
        """Block until the current session finishes (or timeout)."""
        if not self._analysis_ready.wait(timeout):
            return None
        return self.session.analysis if self.session is not None else None

    def wait_for_assessment(self, timeout: Optional[float] = None) -> Optional[AssessmentResult]:
        if not self._assessment_ready.wait(timeout):
            return None
        return self.assessment.result if self.assessment is not None else None

    # ── Loop-side handlers ────────────────────────────────────────────────────

    def _launch(self, exercise_kind: ExerciseKind, duration_seconds: int) -> None:
        session = ExerciseSession(
            exercise_kind,
            duration_seconds,
            mode=self.scheduler.mode,
            profile=self._profile,
            rng=self._rng,
            announcer=self.announcer,
        )
        session.on_finished(self._on_session_finished)
        self.session = session

    def _submit_transition(self, name: str, action) -> None:
        def _apply(now_ms: float) -> None:
            if self.session is None:
                log.warning(f"Cannot {name}: no exercise launched.")
                return
            try:
                action(self.session, now_ms)
            except RehabError as e:
                log.warning(str(e))

        self.scheduler.submit(Invoke(_apply))

    def _sync_session(self, now_ms: float) -> None:
        if self.session is not None:
            self.session.mode = self.scheduler.mode
            self.session.profile = self._profile

    def _start_assessment(self, now_ms: float) -> None:
        if self.assessment is not None and self.assessment.running:
            log.warning("Assessment already running.")
            return
        self.assessment = GuidedAssessment(announcer=self.announcer)
        self.assessment.on_complete(self._on_assessment_complete)
        self.assessment.start(now_ms)

    def _cancel_assessment(self, now_ms: float) -> None:
        if self.assessment is None or not self.assessment.running:
            log.warning("No assessment to cancel.")
            return
        self.assessment.cancel()

    def _on_frame(self, snapshot: TrackerSnapshot) -> None:
        if self.session is not None:
            self.session.on_frame(snapshot)
        if self.assessment is not None:
            self.assessment.on_frame(snapshot)

        if self._frame_listeners:
            payload = self.frame_payload(snapshot)
            for callback in self._frame_listeners:
                callback(payload)

    def _on_tick(self, now_ms: float) -> None:
        if self.session is not None:
            self.session.advance(now_ms)
        if self.assessment is not None:
            self.assessment.advance(now_ms)

    def _on_source_exhausted(self, now_ms: float) -> None:
        if self.session is not None and self.session.is_playing:
            log.info("Recording ended; finishing the session early.")
            self.session.finish()

    def _on_session_finished(self, analysis: SessionAnalysis) -> None:
        self.score_history.append(analysis.clinical_value)
        history = list(self.score_history)
        for sink in self._report_sinks:
            try:
                sink(analysis, self.patient, history)
            except Exception as e:
                log.error(f"Report sink failed: {e}", exc_info=True)
        self._analysis_ready.set()

    def _on_assessment_complete(self, result: AssessmentResult) -> None:
        for sink in self._assessment_sinks:
            try:
                sink(result)
            except Exception as e:
                log.error(f"Assessment sink failed: {e}", exc_info=True)
        self._assessment_ready.set()

    # ── Utility ───────────────────────────────────────────────────────────────

    def frame_payload(self, snapshot: TrackerSnapshot) -> dict:
        """HUD dict: camelCase frame fields plus session counters."""
        payload = snapshot.frame.to_dict()
        payload["mode"] = snapshot.mode.value
        payload["timestamp"] = snapshot.timestamp_ms

        session = self.session
        if session is not None:
            payload["blinkCount"] = session.state.blink_count
            payload["timeLeft"]   = session.state.time_left_seconds
            payload["score"]      = round_half_up(session.state.score)
            payload["phase"]      = session.phase.value
            payload["exercise"]   = session.exercise_kind.value
        else:
            payload["blinkCount"] = snapshot.blink_count
            payload["timeLeft"]   = 0
            payload["score"]      = 0
            payload["phase"]      = None

        if self.assessment is not None and self.assessment.running:
            payload["assessment"] = self.assessment.snapshot()
        return payload
