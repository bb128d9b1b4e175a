# ABOUTME: Tests the metrics facade: id validation, not-found vs no-data, and source failures.
# ABOUTME: Uses an in-memory source and a fixed clock so results are reproducible.

import json
from datetime import datetime, timedelta, timezone

import pytest

from src.common.attempt_source import AttemptSource, InMemoryAttemptSource
from src.common.config import FacadeConfig, MetricsConfig
from src.common.errors import (
    InvalidIdentifierError,
    InvalidTimezoneError,
    NotFoundError,
    SourceUnavailableError,
)
from src.common.schemas import DrillAttempt, DrillType, PhonemeScore, StreakStatus
from src.metrics.facade import MetricsFacade

LEARNER = "64b7f0c2a1e4d5f6a7b8c9d0"
EMPTY_LEARNER = "64b7f0c2a1e4d5f6a7b8c9d1"
NOW = datetime(2024, 3, 10, 18, 0, tzinfo=timezone.utc)


def _attempt(attempt_id, days_ago, accuracy=0.8, pronunciation=0.7):
    return DrillAttempt(
        attempt_id=attempt_id,
        learner_id=LEARNER,
        drill_id="drill-1",
        attempted_at=NOW - timedelta(days=days_ago, hours=1),
        drill_type=DrillType.SENTENCE,
        accuracy_score=accuracy,
        pronunciation_score=pronunciation,
        phoneme_breakdown=(PhonemeScore("r", 0.3),),
    )


HISTORY = [_attempt(f"a{i}", i) for i in range(5)]


class CountingSource(AttemptSource):
    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def fetch_attempts(self, learner_id, since=None):
        self.calls.append((learner_id, since))
        return self.inner.fetch_attempts(learner_id, since)


class FailingSource(AttemptSource):
    def fetch_attempts(self, learner_id, since=None):
        raise ConnectionError("database unreachable")


def _source():
    return InMemoryAttemptSource({LEARNER: HISTORY}, known_learners=[EMPTY_LEARNER])


def _facade(source=None, config=None):
    return MetricsFacade(source or _source(), config=config, clock=lambda: NOW)


@pytest.mark.parametrize("learner_id", ["abc", 123, None, "zzzzzzzzzzzzzzzzzzzzzzzz", LEARNER + "0"])
def test_invalid_identifier_is_rejected_before_reading(learner_id):
    source = CountingSource(_source())

    with pytest.raises(InvalidIdentifierError):
        _facade(source).get_confidence(learner_id)
    assert source.calls == []


def test_unknown_learner_raises_not_found():
    with pytest.raises(NotFoundError):
        _facade().get_pronunciation("000000000000000000000000")


def test_known_learner_without_attempts_is_no_data():
    facade = _facade()

    confidence = facade.get_confidence(EMPTY_LEARNER)
    pronunciation = facade.get_pronunciation(EMPTY_LEARNER)
    streak = facade.get_streak(EMPTY_LEARNER)

    assert confidence.sample_size == 0 and confidence.overall_score is None
    assert not confidence.has_data
    assert pronunciation.sample_size == 0 and pronunciation.weak_phonemes == []
    assert streak.current_streak == 0
    assert streak.streak_status == StreakStatus.BROKEN


def test_repeated_calls_give_identical_results():
    # Self-view and admin recompute go through the same entrypoint with the same id.
    self_view = _facade().get_learner_metrics(LEARNER)
    admin_view = _facade().get_learner_metrics(LEARNER)

    assert self_view == admin_view


def test_each_call_reads_the_source_once():
    source = CountingSource(_source())
    facade = _facade(source)

    facade.get_confidence(LEARNER)
    facade.get_streak(LEARNER)
    facade.get_learner_metrics(LEARNER)

    assert len(source.calls) == 3


def test_learner_metrics_matches_individual_calls():
    facade = _facade()

    combined = facade.get_learner_metrics(LEARNER)

    assert combined.confidence == facade.get_confidence(LEARNER)
    assert combined.pronunciation == facade.get_pronunciation(LEARNER)
    assert combined.streak == facade.get_streak(LEARNER)
    assert combined.streak.current_streak == 5
    assert combined.streak.streak_status == StreakStatus.ACTIVE
    assert combined.confidence.overall_score == pytest.approx(0.8)


def test_source_failure_is_wrapped_with_cause():
    with pytest.raises(SourceUnavailableError) as excinfo:
        _facade(FailingSource()).get_confidence(LEARNER)

    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_lookback_window_is_passed_as_since():
    source = CountingSource(_source())
    facade = _facade(source, MetricsConfig(facade=FacadeConfig(lookback_days=2)))

    metric = facade.get_confidence(LEARNER)

    assert source.calls == [(LEARNER, NOW - timedelta(days=2))]
    assert metric.sample_size == 2


def test_invalid_timezone_raises():
    with pytest.raises(InvalidTimezoneError):
        _facade().get_streak(LEARNER, reference_timezone="Nowhere/Special")


def test_streak_accepts_explicit_as_of():
    record = _facade().get_streak(LEARNER, as_of=NOW + timedelta(days=3))

    assert record.current_streak == 0
    assert record.longest_streak == 5


def test_learner_metrics_serialize_to_json():
    payload = _facade().get_learner_metrics(LEARNER, reference_timezone="Europe/Berlin").to_dict()

    decoded = json.loads(json.dumps(payload))

    assert decoded["learner_id"] == LEARNER
    assert decoded["streak"]["reference_timezone"] == "Europe/Berlin"
    assert decoded["pronunciation"]["weak_phonemes"][0]["phoneme"] == "r"
