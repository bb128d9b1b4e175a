# ABOUTME: Tracks practice streaks as runs of qualifying calendar days in the learner's timezone.
# ABOUTME: Applies a grace window so a streak survives until a full local day passes without activity.

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from src.common.attempts import ensure_utc, sanitize_attempts, utc_now
from src.common.config import StreakConfig
from src.common.errors import InvalidTimezoneError
from src.common.schemas import DailyActivity, DrillAttempt, StreakBadge, StreakRecord, StreakStatus

logger = logging.getLogger(__name__)

QualifyingDayPredicate = Callable[[Sequence[DrillAttempt]], bool]

WEEK_DAYS = 7


def min_attempts(count: int = 1) -> QualifyingDayPredicate:
    """A day qualifies once it holds at least ``count`` attempts."""

    def predicate(day_attempts: Sequence[DrillAttempt]) -> bool:
        return len(day_attempts) >= count

    return predicate


def min_total_duration(seconds: float) -> QualifyingDayPredicate:
    """A day qualifies once the summed attempt durations reach ``seconds``. Unknown durations count as 0."""

    def predicate(day_attempts: Sequence[DrillAttempt]) -> bool:
        return sum(a.duration_seconds or 0.0 for a in day_attempts) >= seconds

    return predicate


def all_of(*predicates: QualifyingDayPredicate) -> QualifyingDayPredicate:
    def predicate(day_attempts: Sequence[DrillAttempt]) -> bool:
        return all(p(day_attempts) for p in predicates)

    return predicate


def predicate_from_config(config: StreakConfig) -> QualifyingDayPredicate:
    predicate = min_attempts(config.min_attempts_per_day)
    if config.min_duration_seconds is not None:
        predicate = all_of(predicate, min_total_duration(config.min_duration_seconds))
    return predicate


def validate_timezone(name: str) -> str:
    """Return ``name`` if it is a timezone pandas can convert into, else raise InvalidTimezoneError."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidTimezoneError(name)
    try:
        pd.Timestamp(0, tz="UTC").tz_convert(name)
    except (KeyError, ValueError, TypeError) as exc:
        raise InvalidTimezoneError(name) from exc
    return name


def local_date(instant: datetime, timezone: str) -> date:
    return pd.Timestamp(ensure_utc(instant)).tz_convert(timezone).date()


def group_by_local_date(attempts: Sequence[DrillAttempt], timezone: str) -> Dict[date, List[DrillAttempt]]:
    if not attempts:
        return {}
    stamps = pd.DatetimeIndex(pd.to_datetime([ensure_utc(a.attempted_at) for a in attempts], utc=True))
    local_dates = stamps.tz_convert(timezone).date
    by_day: Dict[date, List[DrillAttempt]] = defaultdict(list)
    for attempt, day in zip(attempts, local_dates):
        by_day[day].append(attempt)
    return dict(by_day)


def consecutive_runs(days: Sequence[date]) -> List[Tuple[date, date]]:
    """Split ascending unique dates into maximal runs of consecutive days, as (start, end) pairs."""
    runs: List[Tuple[date, date]] = []
    for day in days:
        if runs and day - runs[-1][1] == timedelta(days=1):
            runs[-1] = (runs[-1][0], day)
        else:
            runs.append((day, day))
    return runs


def run_length(run: Tuple[date, date]) -> int:
    return (run[1] - run[0]).days + 1


class StreakEngine:
    def __init__(
        self,
        config: Optional[StreakConfig] = None,
        predicate: Optional[QualifyingDayPredicate] = None,
    ):
        self.config = config or StreakConfig()
        self.predicate = predicate or predicate_from_config(self.config)

    def compute(
        self,
        learner_id: str,
        attempts: Sequence[DrillAttempt],
        reference_timezone: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> StreakRecord:
        timezone = validate_timezone(reference_timezone or self.config.default_timezone)
        as_of = ensure_utc(as_of) if as_of is not None else utc_now()
        clean, dropped = sanitize_attempts(attempts, as_of)

        today = local_date(as_of, timezone)
        by_day = group_by_local_date(clean, timezone)
        qualifying = sorted(day for day, day_attempts in by_day.items() if self.predicate(day_attempts))
        runs = consecutive_runs(qualifying)
        longest = max((run_length(run) for run in runs), default=0)

        current = 0
        streak_start: Optional[date] = None
        last_active = qualifying[-1] if qualifying else None
        if last_active is not None and (today - last_active).days <= self.config.grace_days:
            latest_run = runs[-1]
            current = run_length(latest_run)
            streak_start = latest_run[0]

        if current == 0:
            status = StreakStatus.BROKEN
        elif last_active == today:
            status = StreakStatus.ACTIVE
        else:
            status = StreakStatus.AT_RISK

        qualifying_set = set(qualifying)
        weekly = [
            DailyActivity(
                date=day,
                qualified=day in qualifying_set,
                attempts=len(by_day.get(day, ())),
            )
            for day in (today - timedelta(days=offset) for offset in range(WEEK_DAYS - 1, -1, -1))
        ]
        badges = [
            StreakBadge(badge_id=b.badge_id, badge_name=b.badge_name, milestone=b.milestone)
            for b in sorted(self.config.badges, key=lambda b: (b.milestone, b.badge_id))
            if longest >= b.milestone
        ]

        logger.debug(
            "Streak for %s in %s: current=%d longest=%d status=%s",
            learner_id,
            timezone,
            current,
            longest,
            status.value,
        )

        return StreakRecord(
            learner_id=learner_id,
            current_streak=current,
            longest_streak=longest,
            last_active_date=last_active,
            streak_status=status,
            computed_at=as_of,
            reference_timezone=timezone,
            streak_start_date=streak_start,
            weekly_activity=weekly,
            badges=badges,
            dropped_records=dropped,
        )
