# =============================================================================
# test_simulator.py — Synthetic Generator
# Run: pytest test_simulator.py
# =============================================================================

import math

import numpy as np
import pytest

from config import SACCADE_INTERVAL_MS, SACCADE_INTERVAL_FAST_MS, EYE_CLOSED
from rehab_engine.data_structures import PhysiologicalProfile
from rehab_engine.simulator import (
    SyntheticGenerator, head_pose, saccade_position, _saccade_target,
)

PROFILES = list(PhysiologicalProfile)


@pytest.mark.parametrize("profile", PROFILES)
def test_values_stay_in_range(profile):
    gen = SyntheticGenerator(profile, rng=np.random.default_rng(0))
    for t in np.arange(0, 20000, 16.7):
        f = gen.generate(float(t))
        assert 0.0 <= f.eye_openness_left <= 1.0
        assert 0.0 <= f.eye_openness_right <= 1.0
        assert 0.0 <= f.mouth_symmetry <= 1.0
        assert -1.0 <= f.gaze_x <= 1.0
        assert -1.0 <= f.gaze_y <= 1.0
        assert f.confidence == pytest.approx(0.98)
        assert f.left_eye is not None and f.right_eye is not None


def test_same_seed_same_signal():
    a = SyntheticGenerator(PhysiologicalProfile.LOW, rng=np.random.default_rng(42))
    b = SyntheticGenerator(PhysiologicalProfile.LOW, rng=np.random.default_rng(42))
    for t in range(0, 5000, 50):
        assert a.generate(t) == b.generate(t)


def test_head_pose_at_origin():
    yaw, pitch, roll = head_pose(0.0, 1.0)
    assert yaw == pytest.approx(0.0)
    assert pitch == pytest.approx(6.0)
    assert roll == pytest.approx(0.5)


def test_head_pose_scales_with_profile():
    t = 1234.0
    base = head_pose(t, 1.0)
    shaky = head_pose(t, 4.0)
    for b, s in zip(base, shaky):
        assert s == pytest.approx(b * 4.0)


def test_saccade_eases_from_previous_target():
    start_x, start_y, progress = saccade_position(0.0, SACCADE_INTERVAL_MS)
    assert progress == 0.0
    assert (start_x, start_y) == pytest.approx(_saccade_target(-1))

    end_x, end_y, progress = saccade_position(3 * SACCADE_INTERVAL_MS + 300, SACCADE_INTERVAL_MS)
    assert progress == 1.0
    assert (end_x, end_y) == pytest.approx(_saccade_target(3))


def test_forced_blink_closes_both_eyes():
    gen = SyntheticGenerator(PhysiologicalProfile.HEALTHY, rng=np.random.default_rng(0))
    # 3450 / 3500 is past the 0.96 phase of the forced-blink cycle
    f = gen.generate(3450.0)
    assert f.blink_detected
    assert f.eye_openness_left == pytest.approx(EYE_CLOSED)


def test_high_profile_blinks_more_often():
    def blink_onsets(profile):
        gen = SyntheticGenerator(profile, rng=np.random.default_rng(5))
        count, last = 0, False
        for t in np.arange(0, 60000, 16.7):
            b = gen.generate(float(t)).blink_detected
            count += b and not last
            last = b
        return count

    assert blink_onsets(PhysiologicalProfile.HIGH) > blink_onsets(PhysiologicalProfile.HEALTHY)
    assert blink_onsets(PhysiologicalProfile.HEALTHY) > blink_onsets(PhysiologicalProfile.LOW)


def test_low_profile_is_asymmetric():
    gen = SyntheticGenerator(PhysiologicalProfile.LOW, rng=np.random.default_rng(3))
    f = gen.generate(1000.0)
    assert f.eye_openness_right == pytest.approx(f.eye_openness_left * 0.8)
    assert f.mouth_symmetry == pytest.approx(0.75)
    # Right upper lid droops below the left one
    assert f.right_eye.upper_lid.y > f.left_eye.upper_lid.y


def test_healthy_profile_has_no_jitter():
    gen = SyntheticGenerator(PhysiologicalProfile.HEALTHY, rng=np.random.default_rng(0))
    t = 1000.0
    scan_x, _, _ = saccade_position(t, SACCADE_INTERVAL_MS)
    yaw, _, _ = head_pose(t, 1.0)
    assert gen.generate(t).gaze_x == pytest.approx(scan_x - yaw / 35)


def test_profile_switch_changes_saccade_rate():
    gen = SyntheticGenerator()
    assert gen.saccade_interval == SACCADE_INTERVAL_MS
    gen.profile = PhysiologicalProfile.HIGH
    assert gen.saccade_interval == SACCADE_INTERVAL_FAST_MS
    assert gen.blink_mult == 6.0
    gen.profile = PhysiologicalProfile.LOW
    assert gen.head_mult == 4.0
    assert math.isclose(gen.jitter, 0.15)
