# =============================================================================
# rehab_engine/frame_source.py
#
# The two frame producers behind one interface:
#
#   FrameSource
#     ├── SyntheticSource  — SyntheticGenerator, no resources, unsmoothed
#     └── DetectedSource   — capture stream + detector + DetectorAdapter,
#                            smoothed, throttled by the scheduler
#
# Both expose next_raw_frame(t_ms, state) -> Frame. The scheduler never
# branches on concrete types: it reads `mode`, `smoothed` and `throttled`.
# =============================================================================

from dataclasses import replace
from typing import Optional

from config import NO_CAPTURE_CONFIDENCE
from rehab_engine.data_structures import (
    Frame, SourceMode, PhysiologicalProfile, TrackerState, DEFAULT_FRAME,
)
from rehab_engine.detector_adapter import DetectorAdapter
from rehab_engine.simulator import SyntheticGenerator
from rehab_engine.errors import PermissionDenied, SourceExhausted
from core.logger import get_logger

log = get_logger(__name__)


class FrameSource:
    """Base of the closed set of frame producers."""

    mode: SourceMode
    smoothed: bool = False
    throttled: bool = False

    def activate(self) -> None:
        """Acquire whatever the source needs before its first frame."""

    def deactivate(self) -> None:
        """Release everything acquired by activate(). Safe to call twice."""

    def next_raw_frame(self, t_ms: float, state: TrackerState) -> Frame:
        raise NotImplementedError


class SyntheticSource(FrameSource):
    mode = SourceMode.DEMO

    def __init__(self, generator: Optional[SyntheticGenerator] = None):
        self.generator = generator or SyntheticGenerator()

    def set_profile(self, profile: PhysiologicalProfile) -> None:
        self.generator.profile = profile

    def next_raw_frame(self, t_ms: float, state: TrackerState) -> Frame:
        return self.generator.generate(t_ms)


class DetectedSource(FrameSource):
    """
    Camera-driven source. activate() acquires the capture stream and a
    detector reference; if the camera is refused the source stays usable
    and emits confidence-0 frames, with the reason kept in
    `permission_error`.
    """

    mode = SourceMode.REAL
    smoothed = True
    throttled = True

    def __init__(self, capture_provider, detector):
        self.capture = capture_provider
        self.detector = detector
        self.adapter = DetectorAdapter(detector)
        self._stream = None
        self._holds_detector = False
        self.permission_error: Optional[str] = None

    @property
    def active(self) -> bool:
        return self._stream is not None

    def activate(self) -> None:
        if not self._holds_detector:
            self.detector.acquire()
            self._holds_detector = True

        if self._stream is not None or self.permission_error is not None:
            return
        try:
            self._stream = self.capture.acquire()
            log.info("Capture stream acquired.")
        except PermissionDenied as e:
            self.permission_error = str(e)
            log.warning(f"Camera access denied: {e}. Emitting zero-confidence frames.")

    def deactivate(self) -> None:
        if self._stream is not None:
            self.capture.release(self._stream)
            self._stream = None
        if self._holds_detector:
            self.detector.release()
            self._holds_detector = False
        # A later activate() may ask for the camera again
        self.permission_error = None

    def next_raw_frame(self, t_ms: float, state: TrackerState) -> Frame:
        if self._stream is None:
            prev = state.prev_frame if state.prev_frame is not None else DEFAULT_FRAME
            return replace(prev, confidence=NO_CAPTURE_CONFIDENCE)

        packet = self._stream.latest()
        if self._stream.ended and (packet is None or packet[0] == state.last_capture_ts):
            raise SourceExhausted(f"Capture source {self._stream.source} ended")

        return self.adapter.process(state, packet, t_ms)
