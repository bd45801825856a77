# =============================================================================
# conftest.py — shared fakes for the rehab engine tests
# Stand-ins for the camera, the face landmarker and the announcer so the
# pipeline can be driven tick by tick without hardware.
# =============================================================================

import itertools

import numpy as np
import pytest

from config import (
    NOSE_TIP_IDX, LEFT_CHEEK_IDX, RIGHT_CHEEK_IDX,
    LEFT_EYE_LANDMARK_IDX, RIGHT_EYE_LANDMARK_IDX,
)
from rehab_engine.data_structures import DetectionResult, Frame, SourceMode, TrackerSnapshot
from rehab_engine.errors import PermissionDenied

NUM_LANDMARKS = 478


def make_detection(nose=(0.5, 0.6), blink=(0.0, 0.0), lid_y=0.4) -> DetectionResult:
    """Neutral face: cheeks at x 0.4 / 0.6, upper lids at lid_y."""
    landmarks = [(0.5, 0.5)] * NUM_LANDMARKS
    landmarks[NOSE_TIP_IDX] = nose
    landmarks[LEFT_CHEEK_IDX] = (0.4, 0.5)
    landmarks[RIGHT_CHEEK_IDX] = (0.6, 0.5)
    landmarks[LEFT_EYE_LANDMARK_IDX["upper_lid"]] = (0.45, lid_y)
    landmarks[RIGHT_EYE_LANDMARK_IDX["upper_lid"]] = (0.55, lid_y)
    landmarks[LEFT_EYE_LANDMARK_IDX["pupil"]] = (0.42, 0.45)
    return DetectionResult(
        landmarks=tuple(landmarks),
        blendshape_scores={"eyeBlinkLeft": blink[0], "eyeBlinkRight": blink[1]},
    )


def snapshot(frame: Frame, blink_event=False, t_ms=0.0) -> TrackerSnapshot:
    return TrackerSnapshot(frame=frame, timestamp_ms=t_ms, blink_event=blink_event,
                           mode=SourceMode.DEMO)


class FakeDetector:
    """Scripted detector: returns `results` in order, then repeats the last."""

    def __init__(self, results=None):
        self.results = list(results) if results else [make_detection()]
        self.calls = []
        self.refs = 0
        self.acquired = 0

    def acquire(self):
        self.refs += 1
        self.acquired += 1

    def release(self):
        self.refs = max(0, self.refs - 1)

    def detect(self, image, timestamp_ms):
        self.calls.append(timestamp_ms)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeStream:
    """Every latest() call delivers a fresh frame unless `frozen`."""

    def __init__(self, source=0):
        self.source = source
        self.ended = False
        self.frozen = False
        self.stopped = False
        self._ts = itertools.count(1)
        self._packet = None
        self._image = np.zeros((4, 4, 3), dtype=np.uint8)

    def latest(self):
        if self.frozen:
            return self._packet
        self._packet = (float(next(self._ts)), self._image)
        return self._packet


class FakeCapture:
    def __init__(self, deny=False):
        self.deny = deny
        self.streams = []
        self.released = []

    def acquire(self):
        if self.deny:
            raise PermissionDenied("camera blocked")
        stream = FakeStream()
        self.streams.append(stream)
        return stream

    def release(self, stream):
        stream.stopped = True
        self.released.append(stream)


class FakeAnnouncer:
    def __init__(self):
        self.prompts = []

    def announce(self, text):
        self.prompts.append(text)


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def announcer():
    return FakeAnnouncer()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
