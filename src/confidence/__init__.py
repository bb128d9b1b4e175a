# ABOUTME: Exposes the confidence engine that aggregates drill accuracy per learner.
# ABOUTME: Re-exports the engine plus its trend and label helpers.

from .engine import ConfidenceEngine, compute_trend, confidence_label

__all__ = [
    "ConfidenceEngine",
    "compute_trend",
    "confidence_label",
]
