# =============================================================================
# test_announcer.py — Spoken prompt delivery (no audio device required)
# Run: pytest test_announcer.py
# =============================================================================

import numpy as np
import pytest

pytest.importorskip("pygame")
pytest.importorskip("pyttsx3")

from alerts.announcer import Announcer


def test_disabled_announcer_only_records():
    announcer = Announcer(enabled=False)
    announcer.start()
    announcer.announce("Follow the blue dot.")
    assert announcer.last_prompt == "Follow the blue dot."
    announcer.stop()


def test_empty_prompt_is_ignored():
    announcer = Announcer(enabled=False)
    announcer.announce("")
    assert announcer.last_prompt is None


def test_cue_tone_is_faded_int16():
    tone = Announcer._generate_tone(freq=660.0, duration=0.15, sample_rate=8000)
    assert tone.dtype == np.int16
    assert len(tone) == 1200
    assert tone[0] == 0
    assert abs(int(tone[-1])) < 200
    assert np.abs(tone).max() > 10000
