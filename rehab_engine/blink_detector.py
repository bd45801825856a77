# =============================================================================
# rehab_engine/blink_detector.py
#
# Rising-edge blink counter.
#
# A blink normally spans several ticks with blink_detected=True. Counting
# every such tick would inflate the count, so only the transition
# False → True increments it:
#
#     ticks:   F F T T T F T
#     count:   0 0 1 1 1 1 2
#
# last_blink is updated on every tick, whether or not a blink was counted.
# =============================================================================

from rehab_engine.data_structures import Frame, TrackerState


class BlinkEdgeDetector:
    """
    Usage:
        detector = BlinkEdgeDetector()
        is_new   = detector.update(state, frame)   # state.blink_count advanced
    """

    def update(self, state: TrackerState, frame: Frame) -> bool:
        """Return True when this frame starts a new blink."""
        rising = frame.blink_detected and not state.last_blink
        if rising:
            state.blink_count += 1
        state.last_blink = frame.blink_detected
        return rising
