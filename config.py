# =============================================================================
# config.py — Central Configuration for the Rehab Signal Engine
# All tunable parameters live here. Never hardcode values in modules.
# =============================================================================

import os

# ── Paths ─────────────────────────────────────────────────────────────────────
BASE_DIR    = os.path.dirname(os.path.abspath(__file__))
MODELS_DIR  = os.path.join(BASE_DIR, "models")
ASSETS_DIR  = os.path.join(BASE_DIR, "assets")
LOGS_DIR    = os.path.join(BASE_DIR, "logs")
os.makedirs(LOGS_DIR, exist_ok=True)
os.makedirs(MODELS_DIR, exist_ok=True)
os.makedirs(ASSETS_DIR, exist_ok=True)

# ── Camera ────────────────────────────────────────────────────────────────────
CAMERA_INDEX        = 0          # Webcam device index
CAMERA_WIDTH        = 640
CAMERA_HEIGHT       = 480
CAMERA_FPS          = 30

# ── MediaPipe FaceLandmarker ──────────────────────────────────────────────────
FACE_LANDMARKER_MODEL_PATH = os.path.join(MODELS_DIR, "face_landmarker.task")
MP_NUM_FACES            = 1
MP_MIN_DETECTION_CONF   = 0.5
MP_MIN_TRACKING_CONF    = 0.5

# Landmark indices into the 478-point mesh (iris-refined)
NOSE_TIP_IDX            = 1
LEFT_CHEEK_IDX          = 234
RIGHT_CHEEK_IDX         = 454

# Eye landmark sets: pupil, upper lid, lower lid, inner corner, outer corner
LEFT_EYE_LANDMARK_IDX   = {"pupil": 468, "upper_lid": 159, "lower_lid": 145,
                           "inner_corner": 133, "outer_corner": 33}
RIGHT_EYE_LANDMARK_IDX  = {"pupil": 473, "upper_lid": 386, "lower_lid": 374,
                           "inner_corner": 362, "outer_corner": 263}

# ── Detector Adapter ──────────────────────────────────────────────────────────
HEAD_POSE_SCALE         = 200.0  # normalized landmark offset → degrees
PITCH_NEUTRAL_OFFSET    = 0.1    # nose sits ~0.1 below the eye line at rest
DETECTED_CONFIDENCE     = 0.99
NO_FACE_CONFIDENCE      = 0.3
NO_CAPTURE_CONFIDENCE   = 0.0
DETECTED_MOUTH_SYMMETRY = 0.95

# Blink decision from blendshape scores
BLINK_STRONG_THRESH     = 0.5    # mean(left, right) above this → blink
BLINK_SUBTLE_THRESH     = 0.2    # mean above this …
BLINK_SUBTLE_MAX_DIFF   = 0.2    # … and eyes agree within this …
BLINK_SUBTLE_MIN_EYE    = 0.1    # … and both eyes above this → blink

# ── Smoothing ─────────────────────────────────────────────────────────────────
POSE_SMOOTHING          = 0.5    # Lower = smoother but more lag
LANDMARK_SMOOTHING      = 0.6

# ── Scheduler ─────────────────────────────────────────────────────────────────
DETECTOR_MIN_INTERVAL_MS = 32    # ~30 Hz throttle on the detector path
SCHEDULER_TICK_S         = 1 / 60  # animation-tick cadence of the run loop

# ── Synthetic Generator ───────────────────────────────────────────────────────
# Per-profile multipliers: head instability, blink rate, gaze jitter, asymmetry
PROFILE_PARAMS = {
    "HEALTHY": {"head_stability": 1.0, "blink_rate": 1.0,  "gaze_jitter": 0.00, "asymmetry": 0.0},
    "LOW":     {"head_stability": 4.0, "blink_rate": 0.15, "gaze_jitter": 0.15, "asymmetry": 0.2},
    "HIGH":    {"head_stability": 0.2, "blink_rate": 6.0,  "gaze_jitter": 0.02, "asymmetry": 0.0},
}
SACCADE_INTERVAL_MS      = 1800
SACCADE_INTERVAL_FAST_MS = 800   # HIGH profile
SACCADE_MOVE_MS          = 250
FORCED_BLINK_PERIOD_MS   = 3500  # divided by blink_rate
FORCED_BLINK_PHASE       = 0.96  # last 4% of each period is a blink
BLINK_PROB_SACCADE       = 0.005
BLINK_PROB_FIXATION      = 0.001
VOR_GAIN_DIVISOR         = 35.0
EYE_OPEN                 = 0.94
EYE_CLOSED               = 0.02
EYE_OPEN_FLOOR           = 0.1
SYNTHETIC_CONFIDENCE     = 0.98
SYNTHETIC_MOUTH_SYMMETRY = 0.95

# ── Session ───────────────────────────────────────────────────────────────────
DEFAULT_SESSION_SECONDS  = 60
SCORE_TICK_MS            = 100
COUNTDOWN_TICK_MS        = 1000

# Scoring
FOLLOW_DOT_MIN_CONFIDENCE  = 0.5
FOLLOW_DOT_MOVE_TICKS      = 20   # target relocates once the timer exceeds this
HEAD_DEVIATION_TOLERANCE   = 5.0  # |yaw| + |pitch| in degrees
HEAD_STABILITY_DECAY       = 0.2
HEAD_STABILITY_RECOVERY    = 0.05

# Measured-path status thresholds
BPM_NORMAL_RANGE           = (10, 30)
STABILITY_CRITICAL_BELOW   = 60
STABILITY_WARNING_BELOW    = 80
ACCURACY_CRITICAL_BELOW    = 50

# ── Assessment ────────────────────────────────────────────────────────────────
ASSESSMENT_BASELINE_SCORE  = 70.0
ASSESSMENT_MIN_CONFIDENCE  = 0.8
ASSESSMENT_GAIN            = 0.1
ASSESSMENT_PENALTY         = 0.5

# ── Announcer ─────────────────────────────────────────────────────────────────
TTS_RATE                 = 160    # words/min, ~0.9× a typical default voice
TTS_VOLUME               = 1.0
CUE_FREQ                 = 660.0  # Hz
CUE_DURATION             = 0.15   # seconds
CUE_SOUND_PATH           = os.path.join(ASSETS_DIR, "cue.wav")

# ── WebSocket server ──────────────────────────────────────────────────────────
SERVER_HOST                 = "0.0.0.0"
SERVER_PORT                 = 5055
SERVER_CORS_ALLOWED_ORIGINS = "*"
EMIT_EVENT_NAME             = "rehab_frame"
ANALYSIS_EVENT_NAME         = "session_analysis"
SCORE_HISTORY_LENGTH        = 7
