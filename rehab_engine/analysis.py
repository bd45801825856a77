# =============================================================================
# rehab_engine/analysis.py
#
# Clinical analysis synthesis — runs once, when a session finishes.
#
# Two paths:
#   • Demonstration (DEMO mode): fixed lookup on (exercise, profile). The
#     synthetic signal is illustrative, so the report is too.
#   • Measured (REAL mode): derived from the session counters.
#
#   Values round half up (60.5 → 61, 12.5 → 13).
#
#   Blink rate   BPM = round(blinks / max(elapsed_min, 1))
#                status WARNING outside [10, 30] BPM, else GOOD
#
#   Stability    value = round(head_stability_score)
#                < 60 CRITICAL, < 80 WARNING, else GOOD
#
#   Gaze         accuracy = min(100, round(score / (elapsed_s · 10) · 100))
#                (10 scoring ticks per second → a perfect run scores 100)
#                < 50 CRITICAL, else GOOD
# =============================================================================

import math
from typing import Tuple

from config import (
    BPM_NORMAL_RANGE,
    STABILITY_CRITICAL_BELOW, STABILITY_WARNING_BELOW,
    ACCURACY_CRITICAL_BELOW,
)
from rehab_engine.data_structures import (
    AnalysisStatus, ExerciseKind, PhysiologicalProfile, SessionAnalysis, SourceMode,
)
from rehab_engine.scoring import SessionState

GOOD, WARNING, CRITICAL = AnalysisStatus.GOOD, AnalysisStatus.WARNING, AnalysisStatus.CRITICAL
HEALTHY, LOW, HIGH = PhysiologicalProfile.HEALTHY, PhysiologicalProfile.LOW, PhysiologicalProfile.HIGH

UNIT_BPM       = "BPM"
UNIT_ACCURACY  = "% Accuracy"
UNIT_STABILITY = "% Stability"


# ── Demonstration table ───────────────────────────────────────────────────────
# (exercise, profile) → (value, unit, status, recommendation, notes)

DEMO_ANALYSIS = {
    (ExerciseKind.BLINK_TRAINING, LOW): (
        6, UNIT_BPM, WARNING,
        "Blink rate is critically low. Blink awareness exercises recommended.",
        ("Severe Dry Eye Risk", "Incomplete Blink Pattern"),
    ),
    (ExerciseKind.BLINK_TRAINING, HIGH): (
        42, UNIT_BPM, WARNING,
        "High frequency blinking detected. Monitor for blepharospasm.",
        ("Excessive Blinking", "Possible Irritation", "Anxiety Indicated"),
    ),
    (ExerciseKind.BLINK_TRAINING, HEALTHY): (
        16, UNIT_BPM, GOOD,
        "Normal spontaneous blink rate observed.",
        ("Healthy tear film", "Good rhythm"),
    ),
    (ExerciseKind.FOLLOW_DOT, LOW): (
        45, UNIT_ACCURACY, CRITICAL,
        "Significant gaze instability detected. Vestibular consult advised.",
        ("Tracking Latency", "Saccadic Intrusion", "Poor Fixation"),
    ),
    (ExerciseKind.FOLLOW_DOT, HIGH): (
        98, UNIT_ACCURACY, GOOD,
        "Oculomotor control is excellent. No deficits found.",
        ("Smooth Pursuit", "Accurate Saccades"),
    ),
    (ExerciseKind.FOLLOW_DOT, HEALTHY): (
        88, UNIT_ACCURACY, GOOD,
        "Tracking falls within normal clinical limits.",
        ("Good Oculomotor Control",),
    ),
    (ExerciseKind.HEAD_STABILITY, LOW): (
        35, UNIT_STABILITY, CRITICAL,
        "Poor cephalic control. Risk of cervicogenic dizziness.",
        ("Postural Drift", "Tremor Detected", "Neck Stiffness"),
    ),
    (ExerciseKind.HEAD_STABILITY, HIGH): (
        96, UNIT_STABILITY, GOOD,
        "Excellent vestibulo-collic reflex function.",
        ("High Stability", "No Tremor"),
    ),
    (ExerciseKind.HEAD_STABILITY, HEALTHY): (
        82, UNIT_STABILITY, GOOD,
        "Head stability is adequate for daily tasks.",
        ("Normal Range of Motion",),
    ),
}


# ── Measured metrics ──────────────────────────────────────────────────────────

def round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def blinks_per_minute(blink_count: int, elapsed_seconds: float) -> int:
    minutes = max(elapsed_seconds / 60.0, 1.0)
    return round_half_up(blink_count / minutes)


def bpm_status(bpm: float) -> AnalysisStatus:
    lo, hi = BPM_NORMAL_RANGE
    return WARNING if bpm < lo or bpm > hi else GOOD


def stability_status(stability: float) -> AnalysisStatus:
    if stability < STABILITY_CRITICAL_BELOW:
        return CRITICAL
    if stability < STABILITY_WARNING_BELOW:
        return WARNING
    return GOOD


def gaze_accuracy(score: float, elapsed_seconds: float) -> int:
    if elapsed_seconds <= 0:
        return 0
    return min(100, round_half_up(score / (elapsed_seconds * 10) * 100))


def accuracy_status(accuracy: float) -> AnalysisStatus:
    return CRITICAL if accuracy < ACCURACY_CRITICAL_BELOW else GOOD


def measured_values(state: SessionState) -> Tuple:
    """(value, unit, status, recommendation, notes) from session counters."""
    elapsed = state.elapsed_seconds
    kind = state.exercise_kind

    if kind is ExerciseKind.BLINK_TRAINING:
        bpm = blinks_per_minute(state.blink_count, elapsed)
        status = bpm_status(bpm)
        rec = "Healthy blink patterns." if status is GOOD else "Abnormal blink rate detected."
        notes = ("Possible Dry Eye",) if bpm < BPM_NORMAL_RANGE[0] else ()
        return bpm, UNIT_BPM, status, rec, notes

    if kind is ExerciseKind.HEAD_STABILITY:
        stability = round_half_up(state.head_stability_score)
        return (stability, UNIT_STABILITY, stability_status(stability),
                "Stabilization training ongoing.", ())

    accuracy = gaze_accuracy(state.score, elapsed)
    return (accuracy, UNIT_ACCURACY, accuracy_status(accuracy),
            "Gaze control assessment complete.", ())


def synthesize(
    state: SessionState,
    mode: SourceMode,
    profile: PhysiologicalProfile = HEALTHY,
) -> SessionAnalysis:
    """Build the immutable SessionAnalysis for a finished session."""
    if mode is SourceMode.DEMO:
        value, unit, status, rec, notes = DEMO_ANALYSIS[(state.exercise_kind, profile)]
    else:
        value, unit, status, rec, notes = measured_values(state)

    return SessionAnalysis(
        exercise_kind=state.exercise_kind,
        duration_seconds=state.duration_seconds,
        score=round_half_up(state.score),
        clinical_value=value,
        clinical_unit=unit,
        status=status,
        recommendation=rec,
        notes=tuple(notes),
    )
