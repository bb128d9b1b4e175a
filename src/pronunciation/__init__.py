# ABOUTME: Exposes the pronunciation engine and its weak-phoneme extraction.

from .engine import PronunciationEngine, weak_phonemes

__all__ = [
    "PronunciationEngine",
    "weak_phonemes",
]
