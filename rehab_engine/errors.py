# =============================================================================
# rehab_engine/errors.py
#
# Error kinds of the rehab pipeline. None of them is fatal to the process:
#   • PermissionDenied  — capture unavailable; frames degrade to confidence 0
#   • DetectionError    — one inference call failed; previous frame re-emitted
#   • SourceExhausted   — capture stream ended; the scheduler stops cleanly
#   • InvalidTransition — session asked to move to a phase it cannot reach
# A face that is simply not found is not an error: detectors return None.
# =============================================================================


class RehabError(Exception):
    """Base class for all rehab engine errors."""


class PermissionDenied(RehabError):
    """The capture provider refused or could not open the camera."""


class DetectionError(RehabError):
    """The landmark detector failed on a single frame."""


class SourceExhausted(RehabError):
    """The capture stream has no more frames to deliver."""


class InvalidTransition(RehabError):
    """A session phase change was requested from a phase that forbids it."""

    def __init__(self, current, requested: str):
        super().__init__(f"Cannot {requested} from phase {current.value}")
        self.current = current
        self.requested = requested
