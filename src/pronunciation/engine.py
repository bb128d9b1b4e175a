# ABOUTME: Computes a learner's pronunciation metric from speech-evaluated drill attempts.
# ABOUTME: Surfaces weak phonemes with enough support to count as evidence.

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from src.common.attempts import ensure_utc, recency_weights, sanitize_attempts, utc_now, weighted_mean
from src.common.config import DecayConfig, PronunciationConfig
from src.common.schemas import DrillAttempt, PhonemeStat, PronunciationMetric

logger = logging.getLogger(__name__)


class PronunciationEngine:
    """Aggregate ``pronunciation_score`` and ``phoneme_breakdown`` into a PronunciationMetric."""

    def __init__(self, decay: Optional[DecayConfig] = None, config: Optional[PronunciationConfig] = None):
        self.decay = decay or DecayConfig()
        self.config = config or PronunciationConfig()

    def compute(
        self,
        learner_id: str,
        attempts: Sequence[DrillAttempt],
        as_of: Optional[datetime] = None,
    ) -> PronunciationMetric:
        as_of = ensure_utc(as_of) if as_of is not None else utc_now()
        clean, dropped = sanitize_attempts(attempts, as_of)

        speech = [a for a in clean if a.pronunciation_score is not None or a.phoneme_breakdown]
        scored = [a for a in speech if a.pronunciation_score is not None]

        overall = None
        if scored:
            weights = recency_weights([a.attempted_at for a in scored], as_of, self.decay)
            values = np.array([a.pronunciation_score for a in scored], dtype=float)
            overall = weighted_mean(values, weights)

        weak = weak_phonemes(speech, self.config)
        logger.debug(
            "Pronunciation for %s: overall=%s samples=%d weak=%d", learner_id, overall, len(speech), len(weak)
        )

        return PronunciationMetric(
            learner_id=learner_id,
            overall_score=overall,
            weak_phonemes=weak,
            sample_size=len(speech),
            computed_at=as_of,
            dropped_records=dropped,
        )


def phoneme_frame(attempts: Sequence[DrillAttempt]) -> pd.DataFrame:
    rows = [
        {"phoneme": entry.phoneme, "score": float(entry.score)}
        for attempt in attempts
        for entry in attempt.phoneme_breakdown
    ]
    if not rows:
        return pd.DataFrame(columns=["phoneme", "score"])
    return pd.DataFrame(rows)


def weak_phonemes(attempts: Sequence[DrillAttempt], config: PronunciationConfig) -> List[PhonemeStat]:
    """
    Phonemes whose unweighted mean score is below ``weak_threshold``.

    Phonemes seen fewer than ``min_support`` times are excluded whatever their score.
    Result is ordered worst first, ties broken by phoneme symbol.
    """

    df = phoneme_frame(attempts)
    if df.empty:
        return []

    grouped = (
        df.groupby("phoneme", sort=True)
        .agg(mean_score=("score", "mean"), occurrences=("score", "count"))
        .reset_index()
    )
    grouped = grouped[
        (grouped["occurrences"] >= config.min_support) & (grouped["mean_score"] < config.weak_threshold)
    ]
    grouped = grouped.sort_values(["mean_score", "phoneme"], kind="mergesort")

    return [
        PhonemeStat(phoneme=str(row.phoneme), mean_score=float(row.mean_score), occurrences=int(row.occurrences))
        for row in grouped.itertuples(index=False)
    ]
