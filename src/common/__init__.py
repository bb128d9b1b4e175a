# ABOUTME: Makes the shared common package importable across engines.
# ABOUTME: Re-exports schema types, errors, config loaders, and attempt sources.

from .schemas import (
    ConfidenceMetric,
    DailyActivity,
    DrillAttempt,
    DrillType,
    LearnerMetrics,
    PhonemeScore,
    PhonemeStat,
    PronunciationMetric,
    StreakBadge,
    StreakRecord,
    StreakStatus,
    Trend,
)
from .errors import (
    ConfigError,
    InvalidIdentifierError,
    InvalidTimezoneError,
    NotFoundError,
    ProgressMetricsError,
    SourceUnavailableError,
)
from .config import MetricsConfig, load_metrics_config
from .attempt_source import AttemptSource, InMemoryAttemptSource, ParquetAttemptSource

__all__ = [
    "AttemptSource",
    "ConfidenceMetric",
    "ConfigError",
    "DailyActivity",
    "DrillAttempt",
    "DrillType",
    "InMemoryAttemptSource",
    "InvalidIdentifierError",
    "InvalidTimezoneError",
    "LearnerMetrics",
    "MetricsConfig",
    "NotFoundError",
    "ParquetAttemptSource",
    "PhonemeScore",
    "PhonemeStat",
    "ProgressMetricsError",
    "PronunciationMetric",
    "SourceUnavailableError",
    "StreakBadge",
    "StreakRecord",
    "StreakStatus",
    "Trend",
    "load_metrics_config",
]
