# ABOUTME: Defines canonical data structures shared by the three metric engines.
# ABOUTME: Centralizes drill attempt, confidence, pronunciation, and streak schemas.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class DrillType(str, Enum):
    WORD = "word"
    SENTENCE = "sentence"
    CONVERSATION = "conversation"
    VOCABULARY = "vocabulary"
    ROLEPLAY = "roleplay"
    MATCHING = "matching"
    DEFINITION = "definition"
    FILL_BLANK = "fill_blank"
    GRAMMAR = "grammar"
    SUMMARY = "summary"
    LISTENING = "listening"
    READING = "reading"

    @classmethod
    def _missing_(cls, value):
        # Accept camelCase names such as "fillBlank" as stored by the practice platform.
        if isinstance(value, str):
            snake = re.sub(r"(?<!^)(?=[A-Z])", "_", value.strip()).lower()
            for member in cls:
                if member.value == snake:
                    return member
        return None


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class StreakStatus(str, Enum):
    ACTIVE = "active"
    AT_RISK = "at_risk"
    BROKEN = "broken"


@dataclass(frozen=True)
class PhonemeScore:
    """One phoneme's score inside a speech-evaluated attempt."""

    phoneme: str
    score: float


@dataclass(frozen=True)
class DrillAttempt:
    """Canonical drill-attempt row served by an AttemptSource. Never mutated."""

    attempt_id: str
    learner_id: str
    drill_id: str
    attempted_at: datetime  # tz-aware UTC
    drill_type: DrillType
    accuracy_score: Optional[float] = None
    pronunciation_score: Optional[float] = None
    phoneme_breakdown: Tuple[PhonemeScore, ...] = ()
    duration_seconds: Optional[float] = None

    @property
    def has_any_score(self) -> bool:
        return self.accuracy_score is not None or self.pronunciation_score is not None


@dataclass(frozen=True)
class ConfidenceMetric:
    learner_id: str
    overall_score: Optional[float]
    by_drill_type: Dict[DrillType, float]
    sample_size: int
    computed_at: datetime
    trend: Optional[Trend] = None
    label: Optional[str] = None
    dropped_records: int = 0
    # Sub-scores over speech-scored drill types and over every other drill type.
    pronunciation_confidence: Optional[float] = None
    completion_confidence: Optional[float] = None

    @property
    def has_data(self) -> bool:
        return self.sample_size > 0

    def to_dict(self) -> Dict:
        return {
            "learner_id": self.learner_id,
            "overall_score": self.overall_score,
            "by_drill_type": {DrillType(k).value: v for k, v in self.by_drill_type.items()},
            "sample_size": self.sample_size,
            "computed_at": self.computed_at.isoformat(),
            "trend": self.trend.value if self.trend else None,
            "label": self.label,
            "dropped_records": self.dropped_records,
            "pronunciation_confidence": self.pronunciation_confidence,
            "completion_confidence": self.completion_confidence,
        }


@dataclass(frozen=True)
class PhonemeStat:
    """Aggregated score for one phoneme symbol across a learner's attempts."""

    phoneme: str
    mean_score: float
    occurrences: int


@dataclass(frozen=True)
class PronunciationMetric:
    learner_id: str
    overall_score: Optional[float]
    weak_phonemes: List[PhonemeStat]
    sample_size: int
    computed_at: datetime
    dropped_records: int = 0

    @property
    def has_data(self) -> bool:
        return self.sample_size > 0

    def to_dict(self) -> Dict:
        return {
            "learner_id": self.learner_id,
            "overall_score": self.overall_score,
            "weak_phonemes": [
                {"phoneme": p.phoneme, "mean_score": p.mean_score, "occurrences": p.occurrences}
                for p in self.weak_phonemes
            ],
            "sample_size": self.sample_size,
            "computed_at": self.computed_at.isoformat(),
            "dropped_records": self.dropped_records,
        }


@dataclass(frozen=True)
class DailyActivity:
    date: date
    qualified: bool
    attempts: int


@dataclass(frozen=True)
class StreakBadge:
    """Milestone reached by a learner's longest streak."""

    badge_id: str
    badge_name: str
    milestone: int


@dataclass(frozen=True)
class StreakRecord:
    learner_id: str
    current_streak: int
    longest_streak: int
    last_active_date: Optional[date]
    streak_status: StreakStatus
    computed_at: datetime
    reference_timezone: str = "UTC"
    streak_start_date: Optional[date] = None
    weekly_activity: List[DailyActivity] = field(default_factory=list)
    badges: List[StreakBadge] = field(default_factory=list)
    dropped_records: int = 0

    def to_dict(self) -> Dict:
        return {
            "learner_id": self.learner_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active_date": self.last_active_date.isoformat() if self.last_active_date else None,
            "streak_status": self.streak_status.value,
            "computed_at": self.computed_at.isoformat(),
            "reference_timezone": self.reference_timezone,
            "streak_start_date": self.streak_start_date.isoformat() if self.streak_start_date else None,
            "weekly_activity": [
                {"date": d.date.isoformat(), "qualified": d.qualified, "attempts": d.attempts}
                for d in self.weekly_activity
            ],
            "badges": [
                {"badge_id": b.badge_id, "badge_name": b.badge_name, "milestone": b.milestone}
                for b in self.badges
            ],
            "dropped_records": self.dropped_records,
        }


@dataclass(frozen=True)
class LearnerMetrics:
    """Combined result of one fan-out over a single attempt snapshot."""

    learner_id: str
    confidence: ConfidenceMetric
    pronunciation: PronunciationMetric
    streak: StreakRecord

    def to_dict(self) -> Dict:
        return {
            "learner_id": self.learner_id,
            "confidence": self.confidence.to_dict(),
            "pronunciation": self.pronunciation.to_dict(),
            "streak": self.streak.to_dict(),
        }
