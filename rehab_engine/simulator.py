# =============================================================================
# rehab_engine/simulator.py
#
# SyntheticGenerator — produces a plausible Frame purely as a function of
# elapsed time and a PhysiologicalProfile. Used for demonstrations when no
# camera is involved.
#
# Signal model (t in ms, every amplitude scaled by the profile):
#
#   Head pose:   slow sinusoid (period 4–6 s) + micro-tremor (0.9–1.5 s)
#                  yaw   = 8·sin(t/4000) + 1.5·sin(t/900)
#                  pitch = 4·cos(t/5000) + 2 + sin(t/1200)
#                  roll  = 2·sin(t/6000) + 0.5·cos(t/1500)
#
#   Saccades:    time is cut into fixed intervals; interval k aims at
#                  target_k = (0.5·sin(123.45·k), 0.3·cos(678.90·k))
#                gaze eases from target_{k−1} to target_k over the first
#                250 ms with a cubic ease-out  e(p) = 1 − (1 − p)³
#
#   VOR:         gaze −= (yaw/35, pitch/35)  (counter-rotation)
#
#   Blinks:      forced once per 3500/blink_rate ms, plus a random blink
#                with per-tick probability (0.005 while moving,
#                0.001 while fixating) · blink_rate
#
# Only the jitter and random-blink terms draw from the random generator;
# inject a seeded numpy Generator for reproducible runs.
# =============================================================================

import math
from typing import Optional

import numpy as np

from config import (
    PROFILE_PARAMS,
    SACCADE_INTERVAL_MS, SACCADE_INTERVAL_FAST_MS, SACCADE_MOVE_MS,
    FORCED_BLINK_PERIOD_MS, FORCED_BLINK_PHASE,
    BLINK_PROB_SACCADE, BLINK_PROB_FIXATION,
    VOR_GAIN_DIVISOR,
    EYE_OPEN, EYE_CLOSED, EYE_OPEN_FLOOR,
    SYNTHETIC_CONFIDENCE, SYNTHETIC_MOUTH_SYMMETRY,
)
from rehab_engine.data_structures import (
    Frame, EyeLandmarkSet, Point, PhysiologicalProfile,
)
from core.logger import get_logger

log = get_logger(__name__)


# ── Waveform helpers ──────────────────────────────────────────────────────────

def _saccade_target(seed: int):
    return math.sin(seed * 123.45) * 0.5, math.cos(seed * 678.90) * 0.3


def _ease_out_cubic(p: float) -> float:
    return 1.0 - (1.0 - p) ** 3


def head_pose(t: float, head_mult: float):
    """Return (yaw, pitch, roll) in degrees at time t (ms)."""
    yaw = (math.sin(t / 4000) * 8 + math.sin(t / 900) * 1.5) * head_mult
    pitch = (math.cos(t / 5000) * 4 + 2 + math.sin(t / 1200) * 1.0) * head_mult
    roll = (math.sin(t / 6000) * 2 + math.cos(t / 1500) * 0.5) * head_mult
    return yaw, pitch, roll


def saccade_position(t: float, interval_ms: float):
    """
    Return (scan_x, scan_y, progress) for the saccade active at time t.
    progress reaches 1.0 once the 250 ms movement phase is over.
    """
    seed = math.floor(t / interval_ms)
    tx, ty = _saccade_target(seed)
    px, py = _saccade_target(seed - 1)

    progress = min(1.0, (t % interval_ms) / SACCADE_MOVE_MS)
    ease = _ease_out_cubic(progress)

    return px + (tx - px) * ease, py + (ty - py) * ease, progress


def project_eye(
    center_x: float,
    inner_x: float,
    outer_x: float,
    head_shift: tuple,
    iris_shift: tuple,
    blink_offset: float,
    droop: float = 0.0,
) -> EyeLandmarkSet:
    """
    Place the five landmarks of one eye.
    Fixed base positions, shifted by head pose and gaze; the upper lid
    drops by blink_offset as the eye closes.
    """
    hx, hy = head_shift
    ix, iy = iris_shift
    lid_track_y = iy * 0.5
    return EyeLandmarkSet(
        pupil=Point(center_x + hx + ix, 0.45 + hy + iy),
        upper_lid=Point(center_x + hx, 0.42 + hy + lid_track_y + blink_offset + droop),
        lower_lid=Point(center_x + hx, 0.48 + hy + blink_offset * 0.2),
        inner_corner=Point(inner_x + hx, 0.45 + hy),
        outer_corner=Point(outer_x + hx, 0.45 + hy),
    )


# ── Generator ─────────────────────────────────────────────────────────────────

class SyntheticGenerator:
    """
    Physiological simulator. Pure in (t, profile) apart from the jitter and
    random-blink terms.

    Usage:
        gen   = SyntheticGenerator(PhysiologicalProfile.LOW, rng=np.random.default_rng(7))
        frame = gen.generate(t_ms)
    """

    def __init__(
        self,
        profile: PhysiologicalProfile = PhysiologicalProfile.HEALTHY,
        rng: Optional[np.random.Generator] = None,
    ):
        self._rng = rng if rng is not None else np.random.default_rng()
        self.profile = profile
        log.info(f"SyntheticGenerator initialized (profile={profile.value})")

    @property
    def profile(self) -> PhysiologicalProfile:
        return self._profile

    @profile.setter
    def profile(self, profile: PhysiologicalProfile) -> None:
        self._profile = profile
        params = PROFILE_PARAMS[profile.value]
        self.head_mult  = params["head_stability"]
        self.blink_mult = params["blink_rate"]
        self.jitter     = params["gaze_jitter"]
        self.asymmetry  = params["asymmetry"]
        self.saccade_interval = (
            SACCADE_INTERVAL_FAST_MS if profile is PhysiologicalProfile.HIGH
            else SACCADE_INTERVAL_MS
        )

    def generate(self, t: float) -> Frame:
        """Build the Frame for elapsed time t (ms)."""
        # ── 1. Head pose ─────────────────────────────────────────────────────
        yaw, pitch, roll = head_pose(t, self.head_mult)

        # ── 2. Saccadic gaze + VOR ───────────────────────────────────────────
        scan_x, scan_y, progress = saccade_position(t, self.saccade_interval)
        if self.jitter > 0:
            scan_x += (self._rng.random() - 0.5) * self.jitter
            scan_y += (self._rng.random() - 0.5) * self.jitter

        gaze_x = scan_x - yaw / VOR_GAIN_DIVISOR
        gaze_y = scan_y - pitch / VOR_GAIN_DIVISOR

        # ── 3. Blink ─────────────────────────────────────────────────────────
        is_saccading = progress < 0.5
        blink_prob = (BLINK_PROB_SACCADE if is_saccading else BLINK_PROB_FIXATION) * self.blink_mult
        cycle_len = FORCED_BLINK_PERIOD_MS / self.blink_mult
        forced = (t % cycle_len) / cycle_len > FORCED_BLINK_PHASE
        is_blinking = forced or self._rng.random() < blink_prob

        # ── 4. Eyelids ───────────────────────────────────────────────────────
        if is_blinking:
            openness = EYE_CLOSED
        else:
            gaze_effect = max(0.0, gaze_y * 0.2)
            pitch_effect = max(0.0, pitch * 0.01)
            tremor = math.sin(t / 50) * 0.005
            openness = max(EYE_OPEN_FLOOR, EYE_OPEN - gaze_effect - pitch_effect + tremor)

        openness_left = openness
        openness_right = openness * (1.0 - self.asymmetry)

        # ── 5. Landmarks ─────────────────────────────────────────────────────
        head_shift = (yaw * 0.005, pitch * 0.005)
        iris_shift = (gaze_x * 0.08, gaze_y * 0.08)
        blink_offset = (1 - openness) * 0.035

        left_eye = project_eye(0.40, 0.46, 0.34, head_shift, iris_shift, blink_offset)
        right_eye = project_eye(0.60, 0.54, 0.66, head_shift, iris_shift, blink_offset,
                                droop=self.asymmetry * 0.02)

        return Frame(
            yaw=yaw,
            pitch=pitch,
            roll=roll,
            eye_openness_left=float(np.clip(openness_left, 0.0, 1.0)),
            eye_openness_right=float(np.clip(openness_right, 0.0, 1.0)),
            mouth_symmetry=float(np.clip(SYNTHETIC_MOUTH_SYMMETRY - self.asymmetry, 0.0, 1.0)),
            gaze_x=float(np.clip(gaze_x, -1.0, 1.0)),
            gaze_y=float(np.clip(gaze_y, -1.0, 1.0)),
            blink_detected=is_blinking,
            confidence=SYNTHETIC_CONFIDENCE,
            left_eye=left_eye,
            right_eye=right_eye,
        )
