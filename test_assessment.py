# =============================================================================
# test_assessment.py — Guided six-step screening
# Run: pytest test_assessment.py
# =============================================================================

from dataclasses import replace

import pytest

from conftest import FakeAnnouncer, snapshot
from rehab_engine.assessment import ASSESSMENT_STEPS, GuidedAssessment
from rehab_engine.data_structures import Frame
from rehab_engine.errors import RehabError

CONFIDENT = Frame(confidence=0.98)
LOST = Frame(confidence=0.3)
TOTAL_SECONDS = sum(s.duration_seconds for s in ASSESSMENT_STEPS)


def run_seconds(assessment, seconds, frame=CONFIDENT, start_s=1):
    for s in range(start_s, start_s + seconds):
        assessment.on_frame(snapshot(frame))
        assessment.advance(s * 1000.0)


def test_step_sequence():
    assert [s.id for s in ASSESSMENT_STEPS] == [
        "intro", "calibration", "eye_track", "face_sym", "head_stab", "complete",
    ]
    assert [s.duration_seconds for s in ASSESSMENT_STEPS] == [5, 3, 10, 8, 8, 3]
    assert TOTAL_SECONDS == 37


def test_full_run_completes():
    announcer = FakeAnnouncer()
    results = []
    assessment = GuidedAssessment(announcer=announcer)
    assessment.on_complete(results.append)
    assessment.start(0.0)

    run_seconds(assessment, TOTAL_SECONDS - 1)
    assert assessment.running
    assert assessment.current_step.id == "complete"

    run_seconds(assessment, 1, start_s=TOTAL_SECONDS)
    assert not assessment.running

    result = results[0]
    assert result.status == "Complete"
    assert announcer.prompts == [s.prompt for s in ASSESSMENT_STEPS]

    # Steady confidence: the running score only climbs, so later domains score higher
    assert 70.0 < result.eye_control_score < result.face_symmetry_score
    assert result.face_symmetry_score < result.head_mobility_score <= 73.4
    mean = (result.eye_control_score + result.face_symmetry_score
            + result.head_mobility_score) / 3
    assert result.overall_score == pytest.approx(mean, abs=0.1)


def test_score_gains_and_penalties():
    assessment = GuidedAssessment()
    assessment.start(0.0)

    run_seconds(assessment, 2, frame=CONFIDENT)
    assert assessment.score == pytest.approx(70.2)

    run_seconds(assessment, 2, frame=LOST, start_s=3)
    assert assessment.score == pytest.approx(69.2)


def test_score_is_bounded():
    long_step = replace(ASSESSMENT_STEPS[2], duration_seconds=500)
    assessment = GuidedAssessment(steps=[long_step, ASSESSMENT_STEPS[-1]])
    assessment.start(0.0)
    run_seconds(assessment, 200, frame=LOST)
    assert assessment.score == 0.0


def test_cancel_marks_incomplete():
    results = []
    assessment = GuidedAssessment()
    assessment.on_complete(results.append)
    assessment.start(0.0)
    run_seconds(assessment, 10)
    assert assessment.current_step.id == "eye_track"

    result = assessment.cancel()

    assert result.status == "Incomplete"
    assert results == [result]
    assert result.eye_control_score > 70.0
    assert result.face_symmetry_score == 0.0
    assert result.head_mobility_score == 0.0
    assert result.overall_score == result.eye_control_score


def test_cannot_start_twice_or_cancel_idle():
    assessment = GuidedAssessment()
    with pytest.raises(RehabError):
        assessment.cancel()
    assessment.start(0.0)
    with pytest.raises(RehabError):
        assessment.start(0.0)


def test_result_payload():
    assessment = GuidedAssessment()
    assessment.start(0.0)
    run_seconds(assessment, TOTAL_SECONDS)
    data = assessment.result.to_dict()
    assert set(data) >= {
        "id", "date", "eyeControlScore", "faceSymmetryScore",
        "headMobilityScore", "overallScore", "status",
    }
    assert data["status"] == "Complete"
