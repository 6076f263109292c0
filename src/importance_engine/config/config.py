"""Project-wide single-source configuration constants for the importance engine."""

from pathlib import Path

from importance_engine.utils.path_utils import find_repo_root

# ----- Base directory configuration -------
PROJECT_ROOT = find_repo_root()
DATA_DIR: Path = PROJECT_ROOT / "datasets"
MODELS_DIR: Path = DATA_DIR / "models"
MODELS_DIR_ENV: str = "IMPORTANCE_MODELS_DIR"   # env override for MODELS_DIR
LOG_LEVEL_ENV: str = "IMPORTANCE_LOG_LEVEL"

# ------ Checkpoint naming -------
CHECKPOINT_PREFIX: str = "model-"
CHECKPOINT_SUFFIX: str = ".pt"
MODEL_VERSION_BASE: str = "1.0.0"

# ------ Device configuration -------
INFERENCE_DEVICE: str = "cpu"  # "cpu" or "cuda"

# ------ Feature layout -------
FEATURE_DIM: int = 25
TEXT_FEATURE_DIM: int = 10
SENDER_FEATURE_DIM: int = 5
MEDIA_FEATURE_DIM: int = 3
TEMPORAL_FEATURE_DIM: int = 5
CHANNEL_FEATURE_DIM: int = 2
NEUTRAL_FEATURE_VALUE: float = 0.5

# ------ Text feature normalisation -------
TEXT_MAX_LENGTH: int = 4000        # chars
TEXT_MAX_WORDS: int = 500
TEXT_MAX_EXCLAMATIONS: int = 5
TEXT_MAX_AVG_WORD_LENGTH: float = 20.0
DEFAULT_URGENT_KEYWORDS: tuple[str, ...] = (
    "urgent", "asap", "important", "critical", "emergency",
    "deadline", "priority", "immediately", "alert", "issue",
)

# ------ Sender / channel heuristics -------
DEFAULT_SENDER_IMPORTANCE: float = 0.5
DEFAULT_CHANNEL_IMPORTANCE: float = 0.5
DEFAULT_INTERACTION_RATE: float = 0.5
BOT_ID_PREFIXES: tuple[str, ...] = ("B",)           # message-source ID scheme
DIRECT_CHANNEL_PREFIXES: tuple[str, ...] = ("D",)

# ------ Temporal features -------
FEATURE_TZ: str | None = None            # None -> host local time
MAX_RECENCY_SECS: int = 7 * 24 * 3600    # 7 days
BUSINESS_HOUR_START: int = 9
BUSINESS_HOUR_END: int = 17

# ------ Network defaults -------
HIDDEN_1_DIM: int = 64
HIDDEN_2_DIM: int = 32
DROPOUT_RATE: float = 0.2
INIT_SEED: int = 42
LR_ONLINE: float = 0.001
LR_BATCH: float = 0.01
BATCH_MINIBATCH_SIZE: int = 32
DEFAULT_SCORE: float = 0.5

# ------ Scoring -------
HIGH_THRESHOLD: float = 0.67
MEDIUM_THRESHOLD: float = 0.33
HIGH_CONFIDENCE: float = 0.75
SCORING_LATENCY_TARGET_MS: int = 1000
SLO_P95_MS: int = 2000

# ------ Training targets -------
FEEDBACK_ADJUSTMENT: float = 0.3
DWELL_LONG_MS: int = 10_000
DWELL_MEDIUM_MS: int = 2_000
TARGET_NO_INTERACTION: float = 0.2
TARGET_LONG_DWELL: float = 0.9
TARGET_MEDIUM_DWELL: float = 0.6
TARGET_SHORT_DWELL: float = 0.4

# ------ Resource ceilings -------
MAX_CPU_WITH_ACCELERATOR: float = 0.05    # 5%
MAX_CPU_WITHOUT_ACCELERATOR: float = 0.20 # 20%
MAX_MEMORY_MB: int = 4096
MAX_ACCELERATOR_MEMORY_PCT: float = 80.0
PAUSE_CPU_FACTOR: float = 1.5
PAUSE_MEMORY_FACTOR: float = 0.9

# ------ Online training -------
ONLINE_QUEUE_CAPACITY: int = 1000
CHECKPOINT_EVERY: int = 100           # trained examples between checkpoints
ONLINE_POLL_SECS: float = 1.0
PAUSE_WAIT_SECS: float = 1.0
STOP_JOIN_SECS: float = 5.0

# ------ Batch training -------
BATCH_EPOCHS: int = 5
MIN_BATCH_SIZE: int = 32
BATCH_INTERVAL_HOURS: int = 24
MONITOR_INTERVAL_SECS: int = 60
BATCH_VOLUME_THRESHOLD: int = 1000    # online examples between batch passes
BATCH_EXAMPLE_LIMIT: int = 5000       # max examples requested per pass
