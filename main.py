"""
main.py — Rehab Engine Entry Point
Runs one exercise session (or the guided assessment) headless to completion
and logs the resulting clinical analysis.

macOS NOTE: OBJC_DISABLE_INITIALIZE_FORK_SAFETY=YES must be set BEFORE any
C-extension (cv2, mediapipe) is imported, otherwise macOS raises:
  libc++abi: terminating due to uncaught exception … mutex lock failed
This is set programmatically here so the user doesn't need a shell export.

Pipeline per tick (see rehab_engine/scheduler.py):
  1. SyntheticSource or DetectedSource  → raw Frame
  2. SmoothingFilter (detector path)    → smoothed Frame
  3. BlinkEdgeDetector                  → blink events
  4. ExerciseSession                    → score / countdown / analysis
  5. WebSocketServer.emit_frame()       → live JSON → HUD

Usage:
  python main.py                                     # 60 s follow-dot demo
  python main.py --exercise blink_training --profile low --duration 30
  python main.py --mode real --camera 0 --model models/face_landmarker.task
  python main.py --mode real --camera recording.mp4  # offline replay
  python main.py --assessment                        # guided screening
"""

# ── macOS fix: must happen before ANY C-extension import ─────────────────────
import os
os.environ.setdefault("OBJC_DISABLE_INITIALIZE_FORK_SAFETY", "YES")
# ─────────────────────────────────────────────────────────────────────────────

import argparse
import logging
import sys

import config
from core.logger import get_logger, set_console_level
from core.thread_manager import ThreadManager
from alerts.announcer import Announcer
from rehab_engine.data_structures import (
    ExerciseKind, PatientDetails, PhysiologicalProfile, SourceMode,
)
from rehab_engine.rehab_core import RehabCore
from rehab_engine.assessment import ASSESSMENT_STEPS

log = get_logger("main")


# ──────────────────────────────────────────────────────────────────────────────
# Argument parsing
# ──────────────────────────────────────────────────────────────────────────────

def _camera_source(value: str):
    """Device index when numeric, otherwise a video file path."""
    return int(value) if value.isdigit() else value


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Rehab Signal Engine — facial rehabilitation sessions")
    p.add_argument("--mode", choices=["demo", "real"], default="demo",
                   help="demo = synthetic signal, real = camera + face landmarker.")
    p.add_argument("--exercise", choices=[k.value.lower() for k in ExerciseKind],
                   default="follow_dot", help="Exercise to run.")
    p.add_argument("--profile", choices=[pr.value.lower() for pr in PhysiologicalProfile],
                   default="healthy", help="Synthetic physiological profile (demo mode).")
    p.add_argument("--duration", type=int, default=config.DEFAULT_SESSION_SECONDS,
                   help=f"Session length in seconds (default: {config.DEFAULT_SESSION_SECONDS}).")
    p.add_argument("--camera", type=_camera_source, default=config.CAMERA_INDEX,
                   help=f"Camera device index or video file (default: {config.CAMERA_INDEX}).")
    p.add_argument("--model", default=config.FACE_LANDMARKER_MODEL_PATH,
                   help="Path to the MediaPipe face_landmarker.task model.")
    p.add_argument("--seed", type=int, default=None,
                   help="Seed for the synthetic signal and target placement.")
    p.add_argument("--patient", default="",
                   help="Patient name attached to the session report.")
    p.add_argument("--assessment", action="store_true",
                   help="Run the guided six-step assessment instead of an exercise.")
    p.add_argument("--no-server", action="store_true",
                   help="Do not start the WebSocket HUD bridge.")
    p.add_argument("--no-voice", action="store_true",
                   help="Disable spoken prompts.")
    p.add_argument("--debug", action="store_true",
                   help="Enable verbose debug output.")

    args = p.parse_args(argv)
    if args.duration <= 0:
        p.error("--duration must be positive")
    return args


# ──────────────────────────────────────────────────────────────────────────────
# Main application
# ──────────────────────────────────────────────────────────────────────────────

class RehabApp:
    """
    Wires RehabCore, the announcer and the HUD bridge, registers them with
    the ThreadManager and runs one session to completion.
    """

    def __init__(self, args):
        self.args = args
        self.tm = ThreadManager()

        self.announcer = Announcer(enabled=not args.no_voice)
        self.core = RehabCore(
            mode=SourceMode[args.mode.upper()],
            profile=PhysiologicalProfile[args.profile.upper()],
            camera_source=args.camera,
            model_path=args.model,
            seed=args.seed,
            announcer=self.announcer,
            patient=PatientDetails(name=args.patient),
        )

        self.server = None
        if not args.no_server:
            from server.websocket_server import WebSocketServer
            self.server = WebSocketServer()
            self.core.add_frame_listener(self.server.emit_frame)
            self.core.add_report_sink(self.server.emit_analysis)
            self.core.add_assessment_sink(self.server.emit_assessment)

        self.tm.register("Announcer", self.announcer.start, self.announcer.stop)
        if self.server is not None:
            self.tm.register("WebSocketServer", self.server.start_background, self.server.stop)
        self.tm.register("RehabCore", self.core.start, self.core.stop)

    def run(self) -> int:
        self.tm.start_all()
        code = 1
        try:
            if self.args.assessment:
                code = self._run_assessment()
            else:
                code = self._run_session()
        except KeyboardInterrupt:
            log.info("KeyboardInterrupt — shutting down.")
            code = 130
        finally:
            failed = self.tm.stop_all()
        if failed and code == 0:
            code = 1
        return code

    def _run_session(self) -> int:
        kind = ExerciseKind[self.args.exercise.upper()]
        self.core.launch(kind, self.args.duration)
        self.core.start_session()
        log.info(f"Running {kind.label} for {self.args.duration}s "
                 f"({self.core.mode.value}, {self.core.profile.value}) …")

        analysis = self.core.wait_for_analysis(timeout=self.args.duration + 10)
        if analysis is None:
            log.error("Session did not finish in time.")
            return 1

        log.info("=" * 50)
        log.info(f"  {analysis.exercise_kind.label} — {analysis.status.value}")
        log.info(f"  {analysis.clinical_value} {analysis.clinical_unit} "
                 f"(score {analysis.score})")
        log.info(f"  {analysis.recommendation}")
        for note in analysis.notes:
            log.info(f"    • {note}")
        log.info("=" * 50)
        return 0

    def _run_assessment(self) -> int:
        self.core.start_assessment()
        total = sum(step.duration_seconds for step in ASSESSMENT_STEPS)
        result = self.core.wait_for_assessment(timeout=total + 10)
        if result is None:
            log.error("Assessment did not finish in time.")
            return 1

        log.info(f"Assessment {result.status}: overall {result.overall_score} "
                 f"(eye {result.eye_control_score}, face {result.face_symmetry_score}, "
                 f"head {result.head_mobility_score})")
        return 0


# ──────────────────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────────────────

def main(argv=None) -> int:
    args = parse_args(argv)
    if args.debug:
        set_console_level(logging.DEBUG)
    return RehabApp(args).run()


if __name__ == "__main__":
    sys.exit(main())
