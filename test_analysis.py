# =============================================================================
# test_analysis.py — Clinical analysis synthesis
# Run: pytest test_analysis.py
# =============================================================================

import pytest

from rehab_engine.analysis import (
    DEMO_ANALYSIS, blinks_per_minute, gaze_accuracy, round_half_up, synthesize,
)
from rehab_engine.data_structures import (
    AnalysisStatus, ExerciseKind, PhysiologicalProfile, SourceMode,
)
from rehab_engine.scoring import SessionState

GOOD, WARNING, CRITICAL = AnalysisStatus.GOOD, AnalysisStatus.WARNING, AnalysisStatus.CRITICAL


def finished_state(kind, duration=60, elapsed=60, **counters):
    state = SessionState(kind, duration)
    state.time_left_seconds = duration - elapsed
    for name, value in counters.items():
        setattr(state, name, value)
    return state


# ── Demonstration path ────────────────────────────────────────────────────────

def test_demo_table_covers_every_combination():
    for kind in ExerciseKind:
        for profile in PhysiologicalProfile:
            assert (kind, profile) in DEMO_ANALYSIS


def test_demo_blink_training_low():
    state = finished_state(ExerciseKind.BLINK_TRAINING, blink_count=40)
    a = synthesize(state, SourceMode.DEMO, PhysiologicalProfile.LOW)
    assert a.clinical_value == 6
    assert a.clinical_unit == "BPM"
    assert a.status is WARNING
    assert a.recommendation == "Blink rate is critically low. Blink awareness exercises recommended."
    assert a.notes == ("Severe Dry Eye Risk", "Incomplete Blink Pattern")


def test_demo_ignores_counters():
    state = finished_state(ExerciseKind.HEAD_STABILITY, head_stability_score=10.0)
    a = synthesize(state, SourceMode.DEMO, PhysiologicalProfile.HIGH)
    assert a.clinical_value == 96
    assert a.status is GOOD


# ── Measured path ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("blinks,elapsed,bpm", [
    (12, 30, 12),   # under a minute counts as a full minute
    (30, 120, 15),
    (0, 60, 0),
])
def test_blinks_per_minute(blinks, elapsed, bpm):
    assert blinks_per_minute(blinks, elapsed) == bpm


def test_measured_blink_rate_normal():
    state = finished_state(ExerciseKind.BLINK_TRAINING, blink_count=16)
    a = synthesize(state, SourceMode.REAL)
    assert a.clinical_value == 16
    assert a.status is GOOD
    assert a.recommendation == "Healthy blink patterns."
    assert a.notes == ()


def test_measured_blink_rate_low_flags_dry_eye():
    state = finished_state(ExerciseKind.BLINK_TRAINING, blink_count=5)
    a = synthesize(state, SourceMode.REAL)
    assert a.clinical_value == 5
    assert a.status is WARNING
    assert a.recommendation == "Abnormal blink rate detected."
    assert a.notes == ("Possible Dry Eye",)


def test_measured_blink_rate_high():
    state = finished_state(ExerciseKind.BLINK_TRAINING, blink_count=40)
    a = synthesize(state, SourceMode.REAL)
    assert a.status is WARNING
    assert a.notes == ()


@pytest.mark.parametrize("stability,status", [
    (45.0, CRITICAL),
    (59.4, CRITICAL),
    (70.0, WARNING),
    (85.0, GOOD),
])
def test_measured_head_stability(stability, status):
    state = finished_state(ExerciseKind.HEAD_STABILITY, head_stability_score=stability)
    a = synthesize(state, SourceMode.REAL)
    assert a.clinical_value == round(stability)
    assert a.clinical_unit == "% Stability"
    assert a.status is status
    assert a.recommendation == "Stabilization training ongoing."


def test_measured_follow_dot_perfect_run():
    state = finished_state(ExerciseKind.FOLLOW_DOT, elapsed=45, score=450.0)
    a = synthesize(state, SourceMode.REAL)
    assert a.clinical_value == 100
    assert a.clinical_unit == "% Accuracy"
    assert a.status is GOOD
    assert a.score == 450


def test_measured_follow_dot_poor_tracking():
    state = finished_state(ExerciseKind.FOLLOW_DOT, elapsed=60, score=240.0)
    a = synthesize(state, SourceMode.REAL)
    assert a.clinical_value == 40
    assert a.status is CRITICAL


def test_zero_elapsed_gives_zero_accuracy():
    assert gaze_accuracy(123.0, 0) == 0
    state = finished_state(ExerciseKind.FOLLOW_DOT, elapsed=0, score=5.0)
    assert synthesize(state, SourceMode.REAL).clinical_value == 0


def test_analysis_payload():
    state = finished_state(ExerciseKind.BLINK_TRAINING, duration=30, elapsed=30, blink_count=8)
    data = synthesize(state, SourceMode.REAL).to_dict()
    assert data["exerciseType"] == "BLINK TRAINING"
    assert data["duration"] == 30
    assert data["clinicalUnit"] == "BPM"
    assert data["status"] == "WARNING"
    assert data["notes"] == ["Possible Dry Eye"]


def test_head_stability_scenario_thirty_seconds():
    state = finished_state(ExerciseKind.HEAD_STABILITY, duration=30, elapsed=30,
                           head_stability_score=45.0)
    a = synthesize(state, SourceMode.REAL)
    assert a.clinical_value == 45
    assert a.status is CRITICAL


def test_halves_round_up():
    assert round_half_up(60.5) == 61
    assert round_half_up(59.49) == 59
    assert blinks_per_minute(25, 120) == 13
    state = finished_state(ExerciseKind.HEAD_STABILITY, head_stability_score=60.5)
    assert synthesize(state, SourceMode.REAL).clinical_value == 61
