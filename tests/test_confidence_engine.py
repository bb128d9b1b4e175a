# ABOUTME: Tests recency-weighted confidence aggregation, drill-type breakdown, and trend.
# ABOUTME: Uses synthetic attempts anchored to a fixed computation instant.

from datetime import datetime, timedelta, timezone

import pytest

from src.common.config import ConfidenceConfig, DecayConfig
from src.common.schemas import DrillAttempt, DrillType, Trend
from src.confidence.engine import ConfidenceEngine, compute_trend, confidence_label

LEARNER = "64b7f0c2a1e4d5f6a7b8c9d0"
AS_OF = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _attempt(attempt_id, days_ago, accuracy=None, pronunciation=None, drill_type=DrillType.WORD, at=None):
    return DrillAttempt(
        attempt_id=attempt_id,
        learner_id=LEARNER,
        drill_id=f"drill-{attempt_id}",
        attempted_at=at or AS_OF - timedelta(days=days_ago),
        drill_type=drill_type,
        accuracy_score=accuracy,
        pronunciation_score=pronunciation,
    )


def test_empty_history_is_no_data_not_zero():
    metric = ConfidenceEngine().compute(LEARNER, [], as_of=AS_OF)

    assert metric.sample_size == 0
    assert metric.overall_score is None
    assert metric.by_drill_type == {}
    assert metric.trend is None
    assert metric.label is None
    assert metric.computed_at == AS_OF


def test_single_attempt_scores_its_accuracy():
    metric = ConfidenceEngine().compute(LEARNER, [_attempt("a1", 3, accuracy=0.72)], as_of=AS_OF)

    assert metric.sample_size == 1
    assert metric.overall_score == pytest.approx(0.72)
    assert metric.by_drill_type == {DrillType.WORD: pytest.approx(0.72)}
    assert metric.trend is None


def test_equal_scores_ignore_weighting():
    attempts = [_attempt(f"a{i}", days, accuracy=0.7) for i, days in enumerate([40, 20, 5, 0])]

    metric = ConfidenceEngine().compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.overall_score == 0.7


def test_recent_attempt_outweighs_older_one():
    # Ages 0 and 14 days with a 14-day half-life give weights 1.0 and 0.5.
    recent_high = [_attempt("old", 14, accuracy=0.0), _attempt("new", 0, accuracy=1.0)]
    recent_low = [_attempt("old", 14, accuracy=1.0), _attempt("new", 0, accuracy=0.0)]

    engine = ConfidenceEngine()
    high = engine.compute(LEARNER, recent_high, as_of=AS_OF)
    low = engine.compute(LEARNER, recent_low, as_of=AS_OF)

    assert high.overall_score == pytest.approx(2.0 / 3.0)
    assert low.overall_score == pytest.approx(1.0 / 3.0)


def test_by_drill_type_omits_types_without_samples():
    attempts = [
        _attempt("a1", 2, accuracy=0.4, drill_type=DrillType.WORD),
        _attempt("a2", 1, accuracy=0.8, drill_type=DrillType.SENTENCE),
        _attempt("a3", 1, pronunciation=0.9, drill_type=DrillType.CONVERSATION),
    ]

    metric = ConfidenceEngine().compute(LEARNER, attempts, as_of=AS_OF)

    assert set(metric.by_drill_type) == {DrillType.WORD, DrillType.SENTENCE}
    assert metric.by_drill_type[DrillType.WORD] == pytest.approx(0.4)
    assert metric.by_drill_type[DrillType.SENTENCE] == pytest.approx(0.8)


def test_sample_size_counts_attempts_with_any_score():
    attempts = [
        _attempt("a1", 2, accuracy=0.6),
        _attempt("a2", 1, pronunciation=0.5),
        _attempt("a3", 1),
    ]

    metric = ConfidenceEngine().compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.sample_size == 2
    assert metric.overall_score == pytest.approx(0.6)


def test_pronunciation_only_history_has_samples_but_no_score():
    metric = ConfidenceEngine().compute(LEARNER, [_attempt("a1", 1, pronunciation=0.8)], as_of=AS_OF)

    assert metric.sample_size == 1
    assert metric.overall_score is None


def test_malformed_attempts_are_dropped_and_counted():
    attempts = [
        _attempt("ok", 1, accuracy=0.5),
        _attempt("too-high", 1, accuracy=1.5),
        _attempt("negative", 1, pronunciation=-0.1),
        _attempt("future", 0, accuracy=0.9, at=AS_OF + timedelta(hours=1)),
    ]

    metric = ConfidenceEngine().compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.dropped_records == 3
    assert metric.sample_size == 1
    assert metric.overall_score == pytest.approx(0.5)


@pytest.mark.parametrize(
    "scores, expected",
    [
        ([0.2, 0.3, 0.8, 0.9], Trend.IMPROVING),
        ([0.9, 0.8, 0.3, 0.2], Trend.DECLINING),
        ([0.5, 0.6, 0.55, 0.52], Trend.STABLE),
        ([0.1, 0.9, 0.9], None),
    ],
)
def test_trend_from_half_split(scores, expected):
    attempts = [_attempt(f"a{i}", 10 - i, accuracy=s) for i, s in enumerate(scores)]

    metric = ConfidenceEngine().compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.trend == expected


def test_trend_odd_count_puts_middle_in_newer_half():
    config = ConfidenceConfig(min_trend_attempts=3)
    # older = [0.5], newer = [0.9, 0.5]; counting the middle as older would read as declining.
    assert compute_trend([0.5, 0.9, 0.5], config) == Trend.IMPROVING


def test_identical_timestamps_are_ordered_by_attempt_id():
    at = AS_OF - timedelta(days=1)
    attempts = [
        _attempt("a3", 0, accuracy=0.9, at=at),
        _attempt("a1", 0, accuracy=0.1, at=at),
        _attempt("a4", 0, accuracy=0.9, at=at),
        _attempt("a2", 0, accuracy=0.1, at=at),
    ]

    engine = ConfidenceEngine()
    forward = engine.compute(LEARNER, attempts, as_of=AS_OF)
    backward = engine.compute(LEARNER, list(reversed(attempts)), as_of=AS_OF)

    assert forward.trend == Trend.IMPROVING
    assert forward == backward


def test_compute_is_deterministic():
    attempts = [_attempt(f"a{i}", i * 1.7, accuracy=(i % 5) / 5) for i in range(25)]

    engine = ConfidenceEngine()
    first = engine.compute(LEARNER, attempts, as_of=AS_OF)
    second = engine.compute(LEARNER, attempts, as_of=AS_OF)

    assert first == second
    assert first.overall_score == second.overall_score


def test_scores_stay_within_unit_interval():
    attempts = [_attempt(f"a{i}", i, accuracy=1.0 if i % 2 else 0.0) for i in range(30)]

    metric = ConfidenceEngine().compute(LEARNER, attempts, as_of=AS_OF)

    assert 0.0 <= metric.overall_score <= 1.0
    assert all(0.0 <= v <= 1.0 for v in metric.by_drill_type.values())


def test_drill_type_weights_scale_contribution():
    attempts = [
        _attempt("a1", 0, accuracy=1.0, drill_type=DrillType.ROLEPLAY),
        _attempt("a2", 0, accuracy=0.0, drill_type=DrillType.MATCHING),
    ]
    engine = ConfidenceEngine(
        DecayConfig(), ConfidenceConfig(drill_type_weights={"roleplay": 3.0})
    )

    metric = engine.compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.overall_score == pytest.approx(0.75)


@pytest.mark.parametrize(
    "score, label",
    [(0.97, "Excellent"), (0.9, "Very Good"), (0.83, "Good"), (0.75, "Average"), (0.6, "Developing"), (0.2, "Needs Improvement")],
)
def test_confidence_label_bands(score, label):
    assert confidence_label(score, ConfidenceConfig()) == label


def test_to_dict_uses_plain_values():
    metric = ConfidenceEngine().compute(LEARNER, [_attempt("a1", 1, accuracy=0.9)], as_of=AS_OF)

    payload = metric.to_dict()

    assert payload["by_drill_type"] == {"word": pytest.approx(0.9)}
    assert payload["computed_at"] == AS_OF.isoformat()
    assert payload["label"] == "Very Good"
    assert payload["pronunciation_confidence"] is None
    assert payload["completion_confidence"] == pytest.approx(0.9)


def test_very_old_history_with_short_half_life_still_scores():
    attempts = [
        _attempt("older", 1101, accuracy=0.0, drill_type=DrillType.MATCHING),
        _attempt("newer", 1100, accuracy=1.0, drill_type=DrillType.WORD),
    ]
    engine = ConfidenceEngine(DecayConfig(half_life_days=1.0))

    metric = engine.compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.sample_size == 2
    assert metric.overall_score == pytest.approx(2.0 / 3.0)
    assert metric.by_drill_type == {DrillType.MATCHING: 0.0, DrillType.WORD: 1.0}


def test_stale_drill_type_keeps_its_breakdown():
    # 2000 days at a 1-day half-life would underflow if weights were not normalized per type.
    attempts = [
        _attempt("stale", 2000, accuracy=0.4, drill_type=DrillType.GRAMMAR),
        _attempt("fresh", 0, accuracy=0.9, drill_type=DrillType.WORD),
    ]
    engine = ConfidenceEngine(DecayConfig(half_life_days=1.0))

    metric = engine.compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.by_drill_type[DrillType.GRAMMAR] == pytest.approx(0.4)
    assert metric.overall_score == pytest.approx(0.9)


def test_unknown_drill_type_is_dropped_not_raised():
    attempts = [_attempt("bad", 1, accuracy=0.5, drill_type="karaoke"), _attempt("ok", 1, accuracy=0.7)]

    metric = ConfidenceEngine().compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.dropped_records == 1
    assert metric.overall_score == pytest.approx(0.7)


def test_camel_case_drill_type_is_accepted():
    metric = ConfidenceEngine().compute(LEARNER, [_attempt("a1", 1, accuracy=0.6, drill_type="fillBlank")], as_of=AS_OF)

    assert metric.dropped_records == 0
    assert metric.by_drill_type == {DrillType.FILL_BLANK: pytest.approx(0.6)}


def test_pronunciation_and_completion_sub_scores():
    attempts = [
        _attempt("v", 0, accuracy=0.9, drill_type=DrillType.VOCABULARY),
        _attempt("r", 0, accuracy=0.7, drill_type=DrillType.ROLEPLAY),
        _attempt("m", 0, accuracy=0.5, drill_type=DrillType.MATCHING),
    ]
    engine = ConfidenceEngine(DecayConfig(), ConfidenceConfig(drill_type_weights={"roleplay": 3.0}))

    metric = engine.compute(LEARNER, attempts, as_of=AS_OF)

    # Drill-type multipliers shape the overall score but not the sub-scores.
    assert metric.pronunciation_confidence == pytest.approx(0.8)
    assert metric.completion_confidence == pytest.approx(0.5)
    assert metric.overall_score == pytest.approx((0.9 + 0.7 * 3.0 + 0.5) / 5.0)


def test_sub_score_without_samples_is_none():
    metric = ConfidenceEngine().compute(LEARNER, [_attempt("w", 1, accuracy=0.6)], as_of=AS_OF)

    assert metric.pronunciation_confidence is None
    assert metric.completion_confidence == pytest.approx(0.6)


def test_speech_drill_types_are_configurable():
    attempts = [
        _attempt("w", 0, accuracy=0.4, drill_type=DrillType.WORD),
        _attempt("v", 0, accuracy=0.8, drill_type=DrillType.VOCABULARY),
    ]
    engine = ConfidenceEngine(DecayConfig(), ConfidenceConfig(speech_drill_types=("word",)))

    metric = engine.compute(LEARNER, attempts, as_of=AS_OF)

    assert metric.pronunciation_confidence == pytest.approx(0.4)
    assert metric.completion_confidence == pytest.approx(0.8)
