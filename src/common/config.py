# ABOUTME: Loads tunable metric constants (decay, thresholds, grace window) from YAML.
# ABOUTME: Falls back to documented defaults for any section the file leaves out.

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from .errors import ConfigError
from .schemas import DrillType

CONFIG_ENV_VAR = "PROGRESS_METRICS_CONFIG"


@dataclass(frozen=True)
class DecayConfig:
    """Recency decay shared by confidence and pronunciation."""

    half_life_days: float = 14.0
    decay_factor: float = 0.5


@dataclass(frozen=True)
class ConfidenceConfig:
    trend_delta: float = 0.05
    min_trend_attempts: int = 4
    # Multiplier per drill type on top of recency weight; unlisted types weigh 1.0.
    drill_type_weights: Dict[str, float] = field(default_factory=dict)
    label_bands: Tuple[Tuple[float, str], ...] = (
        (0.95, "Excellent"),
        (0.88, "Very Good"),
        (0.82, "Good"),
        (0.75, "Average"),
        (0.60, "Developing"),
    )
    fallback_label: str = "Needs Improvement"
    # Drill types whose accuracy comes from speech scoring; they feed pronunciation_confidence.
    speech_drill_types: Tuple[str, ...] = ("vocabulary", "roleplay")


@dataclass(frozen=True)
class PronunciationConfig:
    weak_threshold: float = 0.6
    min_support: int = 3


@dataclass(frozen=True)
class BadgeDefinition:
    badge_id: str
    badge_name: str
    milestone: int


@dataclass(frozen=True)
class StreakConfig:
    grace_days: int = 1
    min_attempts_per_day: int = 1
    min_duration_seconds: Optional[float] = None
    default_timezone: str = "UTC"
    badges: Tuple[BadgeDefinition, ...] = (BadgeDefinition("week-warrior", "Week Warrior", 7),)


@dataclass(frozen=True)
class FacadeConfig:
    learner_id_pattern: str = r"^[0-9a-fA-F]{24}$"
    lookback_days: Optional[int] = None


@dataclass(frozen=True)
class MetricsConfig:
    decay: DecayConfig = field(default_factory=DecayConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    pronunciation: PronunciationConfig = field(default_factory=PronunciationConfig)
    streak: StreakConfig = field(default_factory=StreakConfig)
    facade: FacadeConfig = field(default_factory=FacadeConfig)


def load_metrics_config(config_path: Optional[Path] = None) -> MetricsConfig:
    """
    Build a MetricsConfig from YAML.

    Resolution order: explicit path, then the PROGRESS_METRICS_CONFIG environment
    variable, then built-in defaults.
    """

    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return MetricsConfig()
        config_path = Path(env_path)

    try:
        with open(config_path) as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read metrics config at {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigError(f"Metrics config {config_path} must be a mapping.")
    return metrics_config_from_dict(cfg)


def metrics_config_from_dict(cfg: Dict) -> MetricsConfig:
    try:
        decay = DecayConfig(**cfg.get("decay", {}))

        confidence_cfg = dict(cfg.get("confidence", {}))
        if "label_bands" in confidence_cfg:
            confidence_cfg["label_bands"] = tuple(
                (float(band["min_score"]), str(band["label"])) for band in confidence_cfg["label_bands"]
            )
        if "speech_drill_types" in confidence_cfg:
            confidence_cfg["speech_drill_types"] = tuple(str(t) for t in confidence_cfg["speech_drill_types"])
        confidence = ConfidenceConfig(**confidence_cfg)

        pronunciation = PronunciationConfig(**cfg.get("pronunciation", {}))

        streak_cfg = dict(cfg.get("streak", {}))
        if "badges" in streak_cfg:
            streak_cfg["badges"] = tuple(BadgeDefinition(**badge) for badge in streak_cfg["badges"])
        streak = StreakConfig(**streak_cfg)

        facade = FacadeConfig(**cfg.get("facade", {}))
    except (TypeError, KeyError) as exc:
        raise ConfigError(f"Invalid metrics config: {exc}") from exc

    config = MetricsConfig(
        decay=decay,
        confidence=confidence,
        pronunciation=pronunciation,
        streak=streak,
        facade=facade,
    )
    validate_metrics_config(config)
    return config


def validate_metrics_config(config: MetricsConfig) -> None:
    if config.decay.half_life_days <= 0:
        raise ConfigError("decay.half_life_days must be > 0.")
    if not 0.0 < config.decay.decay_factor < 1.0:
        raise ConfigError("decay.decay_factor must be within (0, 1).")
    if config.confidence.min_trend_attempts < 2:
        raise ConfigError("confidence.min_trend_attempts must be >= 2.")
    if any(w <= 0 for w in config.confidence.drill_type_weights.values()):
        raise ConfigError("confidence.drill_type_weights must be positive.")
    known_types = {t.value for t in DrillType}
    unknown = (set(config.confidence.drill_type_weights) | set(config.confidence.speech_drill_types)) - known_types
    if unknown:
        raise ConfigError(f"Unknown drill types in confidence config: {sorted(unknown)}")
    if not 0.0 <= config.pronunciation.weak_threshold <= 1.0:
        raise ConfigError("pronunciation.weak_threshold must be within [0, 1].")
    if config.pronunciation.min_support < 1:
        raise ConfigError("pronunciation.min_support must be >= 1.")
    if config.streak.grace_days < 0:
        raise ConfigError("streak.grace_days must be >= 0.")
    if config.streak.min_attempts_per_day < 1:
        raise ConfigError("streak.min_attempts_per_day must be >= 1.")
    if config.facade.lookback_days is not None and config.facade.lookback_days <= 0:
        raise ConfigError("facade.lookback_days must be > 0 when set.")
