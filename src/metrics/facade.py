# ABOUTME: Single entrypoint the routing layer calls to recompute a learner's metrics.
# ABOUTME: Validates the learner id, reads history once per call, and fans out to the engines.

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from src.common.attempt_source import AttemptSource
from src.common.attempts import ensure_utc, utc_now
from src.common.config import MetricsConfig
from src.common.errors import InvalidIdentifierError, ProgressMetricsError, SourceUnavailableError
from src.common.schemas import (
    ConfidenceMetric,
    DrillAttempt,
    LearnerMetrics,
    PronunciationMetric,
    StreakRecord,
)
from src.confidence.engine import ConfidenceEngine
from src.pronunciation.engine import PronunciationEngine
from src.streak.engine import QualifyingDayPredicate, StreakEngine, validate_timezone

logger = logging.getLogger(__name__)


class MetricsFacade:
    """
    Orchestrates the confidence, pronunciation, and streak engines for one learner.

    The facade is identity-agnostic beyond a format check on the learner id: whether the
    caller is the learner or an admin/tutor recomputing for them is decided upstream, and
    both paths yield identical results for the same attempt snapshot. Nothing is cached
    or written; every call re-reads the source.
    """

    def __init__(
        self,
        source: AttemptSource,
        config: Optional[MetricsConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        streak_predicate: Optional[QualifyingDayPredicate] = None,
    ):
        self.source = source
        self.config = config or MetricsConfig()
        self.clock = clock or utc_now
        self._learner_id_re = re.compile(self.config.facade.learner_id_pattern)

        self.confidence_engine = ConfidenceEngine(self.config.decay, self.config.confidence)
        self.pronunciation_engine = PronunciationEngine(self.config.decay, self.config.pronunciation)
        self.streak_engine = StreakEngine(self.config.streak, predicate=streak_predicate)

    def validate_learner_id(self, learner_id: object) -> str:
        if not isinstance(learner_id, str) or not self._learner_id_re.fullmatch(learner_id):
            raise InvalidIdentifierError(learner_id)
        return learner_id

    def get_confidence(self, learner_id: str) -> ConfidenceMetric:
        learner_id = self.validate_learner_id(learner_id)
        as_of = self._now()
        metric = self.confidence_engine.compute(learner_id, self._load(learner_id, as_of), as_of=as_of)
        logger.info(
            "Confidence metrics computed learner=%s score=%s samples=%d trend=%s",
            learner_id,
            _fmt(metric.overall_score),
            metric.sample_size,
            metric.trend.value if metric.trend else None,
        )
        return metric

    def get_pronunciation(self, learner_id: str) -> PronunciationMetric:
        learner_id = self.validate_learner_id(learner_id)
        as_of = self._now()
        metric = self.pronunciation_engine.compute(learner_id, self._load(learner_id, as_of), as_of=as_of)
        logger.info(
            "Pronunciation metrics computed learner=%s score=%s samples=%d weak_phonemes=%d",
            learner_id,
            _fmt(metric.overall_score),
            metric.sample_size,
            len(metric.weak_phonemes),
        )
        return metric

    def get_streak(
        self,
        learner_id: str,
        reference_timezone: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> StreakRecord:
        learner_id = self.validate_learner_id(learner_id)
        timezone = validate_timezone(reference_timezone or self.config.streak.default_timezone)
        as_of = ensure_utc(as_of) if as_of is not None else self._now()
        record = self.streak_engine.compute(learner_id, self._load(learner_id, as_of), timezone, as_of)
        logger.info(
            "Streak computed learner=%s current=%d longest=%d status=%s",
            learner_id,
            record.current_streak,
            record.longest_streak,
            record.streak_status.value,
        )
        return record

    def get_learner_metrics(self, learner_id: str, reference_timezone: Optional[str] = None) -> LearnerMetrics:
        """Compute all three metrics from one read of the learner's history."""
        learner_id = self.validate_learner_id(learner_id)
        timezone = validate_timezone(reference_timezone or self.config.streak.default_timezone)
        as_of = self._now()
        attempts = self._load(learner_id, as_of)

        metrics = LearnerMetrics(
            learner_id=learner_id,
            confidence=self.confidence_engine.compute(learner_id, attempts, as_of=as_of),
            pronunciation=self.pronunciation_engine.compute(learner_id, attempts, as_of=as_of),
            streak=self.streak_engine.compute(learner_id, attempts, timezone, as_of),
        )
        logger.info(
            "Learner metrics computed learner=%s attempts=%d confidence=%s pronunciation=%s streak=%d",
            learner_id,
            len(attempts),
            _fmt(metrics.confidence.overall_score),
            _fmt(metrics.pronunciation.overall_score),
            metrics.streak.current_streak,
        )
        return metrics

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    def _load(self, learner_id: str, as_of: datetime) -> List[DrillAttempt]:
        lookback = self.config.facade.lookback_days
        since = as_of - timedelta(days=lookback) if lookback else None
        try:
            return list(self.source.fetch_attempts(learner_id, since))
        except ProgressMetricsError:
            raise
        except Exception as exc:
            raise SourceUnavailableError(f"Failed to read attempts for learner '{learner_id}': {exc}") from exc


def _fmt(score: Optional[float]) -> str:
    return "n/a" if score is None else f"{score:.3f}"
