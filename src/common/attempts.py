# ABOUTME: Shared helpers every engine applies to raw attempt history before aggregating.
# ABOUTME: Covers deterministic ordering, malformed-record filtering, recency decay, and frame IO.

from __future__ import annotations

import json
import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import DecayConfig
from .schemas import DrillAttempt, DrillType, PhonemeScore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0

ATTEMPT_COLUMNS = [
    "attempt_id",
    "learner_id",
    "drill_id",
    "attempted_at",
    "drill_type",
    "accuracy_score",
    "pronunciation_score",
    "phoneme_breakdown",
    "duration_seconds",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return a tz-aware UTC datetime; naive values are assumed to already be UTC."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def order_attempts(attempts: Iterable[DrillAttempt]) -> List[DrillAttempt]:
    """Sort by attempt time, ties broken by attempt id so decay and splits are reproducible."""
    return sorted(attempts, key=lambda a: (ensure_utc(a.attempted_at), a.attempt_id))


def _score_ok(score: Optional[float]) -> bool:
    if score is None:
        return True
    return math.isfinite(score) and 0.0 <= score <= 1.0


def _drill_type_ok(value) -> bool:
    try:
        DrillType(value)
    except (TypeError, ValueError):
        return False
    return True


def is_well_formed(attempt: DrillAttempt, as_of: datetime) -> bool:
    if not _drill_type_ok(attempt.drill_type):
        return False
    if ensure_utc(attempt.attempted_at) > as_of:
        return False
    if not (_score_ok(attempt.accuracy_score) and _score_ok(attempt.pronunciation_score)):
        return False
    return all(_score_ok(p.score) for p in attempt.phoneme_breakdown)


def sanitize_attempts(
    attempts: Sequence[DrillAttempt], as_of: datetime
) -> Tuple[List[DrillAttempt], int]:
    """
    Drop malformed attempts and return the ordered survivors plus the dropped count.

    An attempt is malformed when its drill type is unknown, when any of its scores is
    outside [0, 1] (or non-finite), or when it was attempted after ``as_of``. Survivors
    carry UTC timestamps and DrillType members.
    """

    as_of = ensure_utc(as_of)
    kept: List[DrillAttempt] = []
    dropped = 0
    for attempt in attempts:
        if not is_well_formed(attempt, as_of):
            dropped += 1
            continue
        kept.append(
            replace(
                attempt,
                attempted_at=ensure_utc(attempt.attempted_at),
                drill_type=DrillType(attempt.drill_type),
            )
        )

    if dropped:
        logger.warning("Dropped %d malformed attempt(s) before aggregation", dropped)
    return order_attempts(kept), dropped


def attempt_ages(timestamps: Sequence[datetime], as_of: datetime) -> np.ndarray:
    """Age of each timestamp in days relative to ``as_of``, floored at zero."""
    as_of = ensure_utc(as_of)
    return np.array(
        [max(0.0, (as_of - ensure_utc(ts)).total_seconds()) / SECONDS_PER_DAY for ts in timestamps],
        dtype=float,
    )


def decay_weights(ages: np.ndarray, decay: DecayConfig) -> np.ndarray:
    """
    Exponential recency weight ``decay_factor ** (age_days / half_life_days)`` per age.

    Ages are shifted so the newest entry weighs 1.0. Ratios between weights are unchanged,
    which leaves every weighted mean identical, but a very old history with a short
    half-life can no longer underflow to all-zero weights.
    """

    if ages.size == 0:
        return np.zeros(0, dtype=float)
    return np.power(decay.decay_factor, (ages - ages.min()) / decay.half_life_days)


def recency_weights(timestamps: Sequence[datetime], as_of: datetime, decay: DecayConfig) -> np.ndarray:
    return decay_weights(attempt_ages(timestamps, as_of), decay)


def weighted_mean(values: np.ndarray, weights: np.ndarray) -> Optional[float]:
    if values.size == 0:
        return None
    if np.all(values == values[0]):
        return float(values[0])
    total = float(weights.sum())
    if total <= 0.0:
        return None
    mean = float(np.dot(values, weights) / total)
    # Guard float drift just outside [0, 1].
    return min(1.0, max(0.0, mean))


def attempts_to_frame(attempts: Iterable[DrillAttempt]) -> pd.DataFrame:
    rows = []
    for attempt in attempts:
        rows.append(
            {
                "attempt_id": attempt.attempt_id,
                "learner_id": attempt.learner_id,
                "drill_id": attempt.drill_id,
                "attempted_at": ensure_utc(attempt.attempted_at),
                "drill_type": _drill_type_text(attempt.drill_type),
                "accuracy_score": attempt.accuracy_score,
                "pronunciation_score": attempt.pronunciation_score,
                "phoneme_breakdown": [{"phoneme": p.phoneme, "score": p.score} for p in attempt.phoneme_breakdown],
                "duration_seconds": attempt.duration_seconds,
            }
        )
    if not rows:
        return pd.DataFrame(columns=ATTEMPT_COLUMNS)

    df = pd.DataFrame(rows, columns=ATTEMPT_COLUMNS)
    df["attempted_at"] = pd.to_datetime(df["attempted_at"], utc=True)
    return df


def frame_to_attempts(df: pd.DataFrame) -> List[DrillAttempt]:
    """
    Convert a canonical attempts frame into DrillAttempt records.

    Missing optional columns are tolerated; NaN scores become None. Rows with an
    unknown drill type keep the raw text, and the engines drop them as malformed.
    """

    if df is None or df.empty:
        return []

    missing = {"attempt_id", "learner_id", "drill_id", "attempted_at", "drill_type"} - set(df.columns)
    if missing:
        raise ValueError(f"Attempts frame is missing required columns: {sorted(missing)}")

    frame = df.copy()
    frame["attempted_at"] = pd.to_datetime(frame["attempted_at"], utc=True)
    for column in ("accuracy_score", "pronunciation_score", "duration_seconds", "phoneme_breakdown"):
        if column not in frame.columns:
            frame[column] = None

    attempts: List[DrillAttempt] = []
    for row in frame.itertuples(index=False):
        attempts.append(
            DrillAttempt(
                attempt_id=str(row.attempt_id),
                learner_id=str(row.learner_id),
                drill_id=str(row.drill_id),
                attempted_at=row.attempted_at.to_pydatetime(),
                drill_type=_coerce_drill_type(row.drill_type),
                accuracy_score=_optional_float(row.accuracy_score),
                pronunciation_score=_optional_float(row.pronunciation_score),
                phoneme_breakdown=_parse_breakdown(row.phoneme_breakdown),
                duration_seconds=_optional_float(row.duration_seconds),
            )
        )
    return attempts


def _drill_type_text(value) -> str:
    return DrillType(value).value if _drill_type_ok(value) else str(value)


def _coerce_drill_type(value):
    # Unknown types pass through as text so the engines drop and count them.
    if _drill_type_ok(value):
        return DrillType(value)
    return str(value)


def _optional_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return None
    return float(value)


def _parse_breakdown(value) -> Tuple[PhonemeScore, ...]:
    if value is None:
        return ()
    if isinstance(value, float) and math.isnan(value):
        return ()
    # CSV snapshots carry the breakdown as a JSON string.
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.strip() else []
        except json.JSONDecodeError as exc:
            raise ValueError(f"Unparseable phoneme_breakdown: {value!r}") from exc
    # Parquet round-trips lists as numpy arrays.
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if not isinstance(value, (list, tuple)):
        return ()

    scores = []
    for entry in value:
        if isinstance(entry, PhonemeScore):
            scores.append(entry)
        elif isinstance(entry, dict) and entry.get("phoneme"):
            score = _optional_float(entry.get("score"))
            if score is not None:
                scores.append(PhonemeScore(phoneme=str(entry["phoneme"]), score=score))
    return tuple(scores)
