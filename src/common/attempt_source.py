# ABOUTME: Defines the read-only AttemptSource contract the facade loads history through.
# ABOUTME: Ships an in-memory source and a parquet/CSV snapshot source backed by pandas.

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from .attempts import ensure_utc, frame_to_attempts, order_attempts
from .errors import NotFoundError, SourceUnavailableError
from .schemas import DrillAttempt

logger = logging.getLogger(__name__)

# Read as text so all-digit ids such as "000000000000000000000001" keep their leading zeros.
ID_COLUMNS = ("attempt_id", "learner_id", "drill_id")


class AttemptSource(ABC):
    """
    Read-only provider of a learner's drill-attempt history.

    Implementations must return attempts ordered by ``attempted_at`` ascending with
    ties broken by ``attempt_id``, raise NotFoundError for unknown learners, return an
    empty list for known learners without attempts, and wrap read failures in
    SourceUnavailableError.
    """

    @abstractmethod
    def fetch_attempts(self, learner_id: str, since: Optional[datetime] = None) -> List[DrillAttempt]:
        raise NotImplementedError


class InMemoryAttemptSource(AttemptSource):
    def __init__(
        self,
        attempts_by_learner: Mapping[str, Sequence[DrillAttempt]],
        known_learners: Optional[Iterable[str]] = None,
    ):
        self._attempts: Dict[str, List[DrillAttempt]] = {
            learner_id: order_attempts(attempts) for learner_id, attempts in attempts_by_learner.items()
        }
        self._known = set(self._attempts) | set(known_learners or ())

    def fetch_attempts(self, learner_id: str, since: Optional[datetime] = None) -> List[DrillAttempt]:
        if learner_id not in self._known:
            raise NotFoundError(learner_id)
        attempts = self._attempts.get(learner_id, [])
        if since is not None:
            since = ensure_utc(since)
            attempts = [a for a in attempts if ensure_utc(a.attempted_at) >= since]
        return list(attempts)


class ParquetAttemptSource(AttemptSource):
    """
    Serves attempts from a canonical attempts snapshot (parquet or CSV).

    ``learners_path`` optionally points at a roster with a ``learner_id`` column so
    learners without any attempts resolve to an empty history instead of NotFoundError.
    The snapshot is re-read on every fetch so each request sees the current file. When the
    learner has no rows, the roster is read as well to tell an empty history from an unknown
    learner, so a miss costs two file reads.
    """

    def __init__(self, attempts_path: Path, learners_path: Optional[Path] = None):
        self.attempts_path = Path(attempts_path)
        self.learners_path = Path(learners_path) if learners_path else None

    def fetch_attempts(self, learner_id: str, since: Optional[datetime] = None) -> List[DrillAttempt]:
        attempts_df = self._read(self.attempts_path)
        learner_rows = attempts_df[attempts_df["learner_id"] == learner_id]

        if learner_rows.empty and not self._is_known(learner_id):
            raise NotFoundError(learner_id)

        try:
            if since is not None and not learner_rows.empty:
                stamps = pd.to_datetime(learner_rows["attempted_at"], utc=True)
                learner_rows = learner_rows[stamps >= pd.Timestamp(ensure_utc(since))]
            attempts = frame_to_attempts(learner_rows)
        except (ValueError, TypeError) as exc:
            raise SourceUnavailableError(f"Malformed attempts snapshot at {self.attempts_path}: {exc}") from exc

        logger.debug("Loaded %d attempts for learner %s", len(attempts), learner_id)
        return order_attempts(attempts)

    def _is_known(self, learner_id: str) -> bool:
        if self.learners_path is None:
            return False
        roster = self._read(self.learners_path)
        return learner_id in set(roster["learner_id"])

    @staticmethod
    def _read(path: Path) -> pd.DataFrame:
        try:
            if path.suffix == ".csv":
                header = pd.read_csv(path, nrows=0).columns
                df = pd.read_csv(path, dtype={c: str for c in ID_COLUMNS if c in header})
            else:
                df = pd.read_parquet(path)
        except (OSError, ValueError, ImportError) as exc:
            raise SourceUnavailableError(f"Cannot read {path}: {exc}") from exc

        if "learner_id" not in df.columns:
            raise SourceUnavailableError(f"{path} has no learner_id column.")
        # Parquet may still carry integer-typed identifier columns.
        for column in ID_COLUMNS:
            if column in df.columns:
                df[column] = df[column].astype(str)
        return df
