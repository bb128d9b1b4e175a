# ABOUTME: Exposes the streak engine and the qualifying-day predicate factories.
# ABOUTME: Predicates decide which calendar days count toward a streak.

from .engine import (
    QualifyingDayPredicate,
    StreakEngine,
    all_of,
    min_attempts,
    min_total_duration,
    validate_timezone,
)

__all__ = [
    "QualifyingDayPredicate",
    "StreakEngine",
    "all_of",
    "min_attempts",
    "min_total_duration",
    "validate_timezone",
]
