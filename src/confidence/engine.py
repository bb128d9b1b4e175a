# ABOUTME: Computes a learner's confidence metric from recency-weighted drill accuracy.
# ABOUTME: Adds per-drill-type breakdowns, a half-split trend, and a banded label.

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from src.common.attempts import attempt_ages, decay_weights, ensure_utc, sanitize_attempts, utc_now, weighted_mean
from src.common.config import ConfidenceConfig, DecayConfig
from src.common.schemas import ConfidenceMetric, DrillAttempt, DrillType, Trend

logger = logging.getLogger(__name__)


class ConfidenceEngine:
    """
    Aggregate ``accuracy_score`` into a ConfidenceMetric.

    Algorithm:
    1. Drop malformed attempts and order by (attempted_at, attempt_id).
    2. Weight each accuracy by ``decay_factor ** (age_days / half_life_days)``,
       times the optional drill-type multiplier.
    3. Overall and per-drill-type scores are weighted means over accuracy-bearing attempts.
    4. Trend compares unweighted means of the older and newer halves (split by count).
    5. Pronunciation and completion sub-scores split the accuracy-bearing attempts on
       ``speech_drill_types`` and use recency weight only.
    """

    def __init__(self, decay: Optional[DecayConfig] = None, config: Optional[ConfidenceConfig] = None):
        self.decay = decay or DecayConfig()
        self.config = config or ConfidenceConfig()

    def compute(
        self,
        learner_id: str,
        attempts: Sequence[DrillAttempt],
        as_of: Optional[datetime] = None,
    ) -> ConfidenceMetric:
        as_of = ensure_utc(as_of) if as_of is not None else utc_now()
        clean, dropped = sanitize_attempts(attempts, as_of)

        # Attempts with neither score do not count toward the sample at all.
        sample_size = sum(1 for a in clean if a.has_any_score)
        with_accuracy = [a for a in clean if a.accuracy_score is not None]

        if not with_accuracy:
            return ConfidenceMetric(
                learner_id=learner_id,
                overall_score=None,
                by_drill_type={},
                sample_size=sample_size,
                computed_at=as_of,
                trend=None,
                label=None,
                dropped_records=dropped,
            )

        frame = self._attempt_frame(with_accuracy, as_of)
        overall = self._score(frame)

        by_drill_type: Dict[DrillType, float] = {}
        for drill_type, group in frame.groupby("drill_type", sort=True):
            score = self._score(group)
            if score is not None:
                by_drill_type[DrillType(drill_type)] = score

        speech = frame["drill_type"].isin(self.config.speech_drill_types)
        pronunciation_confidence = self._score(frame[speech], type_weighted=False)
        completion_confidence = self._score(frame[~speech], type_weighted=False)

        trend = compute_trend([a.accuracy_score for a in with_accuracy], self.config)
        label = confidence_label(overall, self.config)
        logger.debug(
            "Confidence for %s: overall=%s samples=%d trend=%s", learner_id, overall, sample_size, trend
        )

        return ConfidenceMetric(
            learner_id=learner_id,
            overall_score=overall,
            by_drill_type=by_drill_type,
            sample_size=sample_size,
            computed_at=as_of,
            trend=trend,
            label=label,
            dropped_records=dropped,
            pronunciation_confidence=pronunciation_confidence,
            completion_confidence=completion_confidence,
        )

    def _attempt_frame(self, attempts: List[DrillAttempt], as_of: datetime) -> pd.DataFrame:
        type_weights = self.config.drill_type_weights
        return pd.DataFrame(
            {
                "drill_type": [DrillType(a.drill_type).value for a in attempts],
                "accuracy": np.array([a.accuracy_score for a in attempts], dtype=float),
                "age_days": attempt_ages([a.attempted_at for a in attempts], as_of),
                "multiplier": np.array(
                    [float(type_weights.get(DrillType(a.drill_type).value, 1.0)) for a in attempts], dtype=float
                ),
            }
        )

    def _score(self, frame: pd.DataFrame, type_weighted: bool = True) -> Optional[float]:
        # Decay is normalized within each subset so an old drill type keeps non-zero weights.
        weights = decay_weights(frame["age_days"].to_numpy(), self.decay)
        if type_weighted:
            weights = weights * frame["multiplier"].to_numpy()
        return weighted_mean(frame["accuracy"].to_numpy(), weights)


def compute_trend(scores: Sequence[float], config: ConfidenceConfig) -> Optional[Trend]:
    """
    Compare the unweighted means of the older and newer halves of ``scores``.

    ``scores`` must be in temporal order. The older half holds the first ``n // 2``
    scores and the newer half the rest, so an odd middle element counts as newer.
    """

    if len(scores) < config.min_trend_attempts:
        return None
    midpoint = len(scores) // 2
    older = float(np.mean(scores[:midpoint]))
    newer = float(np.mean(scores[midpoint:]))
    delta = newer - older
    if delta > config.trend_delta:
        return Trend.IMPROVING
    if delta < -config.trend_delta:
        return Trend.DECLINING
    return Trend.STABLE


def confidence_label(score: Optional[float], config: ConfidenceConfig) -> Optional[str]:
    if score is None:
        return None
    for min_score, label in sorted(config.label_bands, reverse=True):
        if score >= min_score:
            return label
    return config.fallback_label
