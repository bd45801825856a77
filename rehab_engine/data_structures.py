# =============================================================================
# rehab_engine/data_structures.py
# Shared value types that flow between every stage of the rehab pipeline.
# Frames and analyses are frozen: a stage that needs a variant builds a new
# one with dataclasses.replace().
# =============================================================================

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


# ── Enumerations ──────────────────────────────────────────────────────────────

class SourceMode(Enum):
    """Which frame source drives the pipeline."""
    DEMO = "DEMO"    # Synthetic Generator + demonstration analysis
    REAL = "REAL"    # Detector Adapter + measured analysis


class PhysiologicalProfile(Enum):
    """Multiplier set used only by the Synthetic Generator."""
    HEALTHY = "HEALTHY"
    LOW     = "LOW"
    HIGH    = "HIGH"


class ExerciseKind(Enum):
    FOLLOW_DOT     = "FOLLOW_DOT"
    BLINK_TRAINING = "BLINK_TRAINING"
    HEAD_STABILITY = "HEAD_STABILITY"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class SessionPhase(Enum):
    IDLE     = "IDLE"
    PLAYING  = "PLAYING"
    FINISHED = "FINISHED"


class AnalysisStatus(Enum):
    GOOD     = "GOOD"
    WARNING  = "WARNING"
    CRITICAL = "CRITICAL"


# ── Frame ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Point:
    """Normalized image-space coordinate, both axes in [0, 1]."""
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class EyeLandmarkSet:
    """Five named points per eye. Used for visualization only."""
    pupil:        Point = Point()
    upper_lid:    Point = Point()
    lower_lid:    Point = Point()
    inner_corner: Point = Point()
    outer_corner: Point = Point()

    POINT_NAMES = ("pupil", "upper_lid", "lower_lid", "inner_corner", "outer_corner")


@dataclass(frozen=True)
class Frame:
    """
    One facial-pose measurement.
    Angles in degrees; openness, symmetry and confidence in [0, 1];
    gaze in [−1, +1] (−1 = far left / far down).
    """
    yaw:   float = 0.0
    pitch: float = 0.0
    roll:  float = 0.0
    eye_openness_left:  float = 0.9
    eye_openness_right: float = 0.9
    mouth_symmetry: float = 0.95
    gaze_x: float = 0.0
    gaze_y: float = 0.0
    blink_detected: bool = False
    confidence: float = 0.0
    left_eye:  Optional[EyeLandmarkSet] = None
    right_eye: Optional[EyeLandmarkSet] = None

    def to_dict(self) -> dict:
        """camelCase payload matching the HUD schema."""
        data = {
            "yaw":              round(self.yaw, 2),
            "pitch":            round(self.pitch, 2),
            "roll":             round(self.roll, 2),
            "eyeOpennessLeft":  round(self.eye_openness_left, 3),
            "eyeOpennessRight": round(self.eye_openness_right, 3),
            "mouthSymmetry":    round(self.mouth_symmetry, 3),
            "gazeX":            round(self.gaze_x, 3),
            "gazeY":            round(self.gaze_y, 3),
            "blinkDetected":    self.blink_detected,
            "confidence":       round(self.confidence, 3),
        }
        for key, eye in (("leftEye", self.left_eye), ("rightEye", self.right_eye)):
            if eye is None:
                continue
            data[key] = {
                _camel(name): {"x": getattr(eye, name).x, "y": getattr(eye, name).y}
                for name in EyeLandmarkSet.POINT_NAMES
            }
        return data


DEFAULT_FRAME = Frame()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


# ── Detector contract ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DetectionResult:
    """What an external landmark detector returns for one image."""
    # Ordered (x, y) landmarks in normalized image coordinates
    landmarks: Tuple[Tuple[float, float], ...] = ()
    # Blendshape name → activation in [0, 1]
    blendshape_scores: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TrackerSnapshot:
    """What the scheduler publishes on every processed tick."""
    frame: Frame
    timestamp_ms: float
    blink_count: int = 0
    # True only on the tick where a new blink started (rising edge)
    blink_event: bool = False
    mode: SourceMode = SourceMode.DEMO


# ── Session output ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SessionAnalysis:
    """Clinical summary of a finished session. Never mutated after creation."""
    exercise_kind:    ExerciseKind
    duration_seconds: int
    score:            int
    clinical_value:   float
    clinical_unit:    str
    status:           AnalysisStatus
    recommendation:   str
    notes:            Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "exerciseType":   self.exercise_kind.label,
            "duration":       self.duration_seconds,
            "score":          self.score,
            "clinicalValue":  self.clinical_value,
            "clinicalUnit":   self.clinical_unit,
            "status":         self.status.value,
            "recommendation": self.recommendation,
            "notes":          list(self.notes),
        }


@dataclass
class PatientDetails:
    """Patient metadata handed to the report sink alongside an analysis."""
    name: str = ""
    id: str = ""
    age: str = ""
    gender: str = ""
    condition: str = ""
    doctor_name: Optional[str] = None
    date_of_birth: Optional[str] = None

    def to_dict(self) -> dict:
        return {_camel(k): v for k, v in asdict(self).items()}


@dataclass
class AssessmentResult:
    """Outcome of the guided screening sequence."""
    id: str
    date: str
    eye_control_score: float = 0.0
    face_symmetry_score: float = 0.0
    head_mobility_score: float = 0.0
    overall_score: float = 0.0
    # "Complete" or "Incomplete"
    status: str = "Incomplete"
    step_scores: List[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {_camel(k): v for k, v in asdict(self).items()}


# ── Pipeline state ────────────────────────────────────────────────────────────

@dataclass
class TrackerState:
    """
    Mutable per-run state of the frame pipeline.
    Owned by the FrameScheduler; the smoothing filter, blink detector and
    detector adapter receive it by reference on each tick and nothing else
    holds on to it.
    """
    # Last frame emitted downstream (None until the first tick)
    prev_frame: Optional[Frame] = None
    # Blink edge detector
    last_blink: bool = False
    blink_count: int = 0
    # Detector path bookkeeping
    last_process_ms: Optional[float] = None
    last_capture_ts: Optional[float] = None
    processed_frames: int = 0

    def reset(self) -> None:
        self.prev_frame = None
        self.last_blink = False
        self.blink_count = 0
        self.last_process_ms = None
        self.last_capture_ts = None
        self.processed_frames = 0
