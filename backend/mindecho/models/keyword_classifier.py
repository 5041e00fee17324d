"""
Keyword Classifier — last-resort text emotion when the text-emotion
collaborator is unreachable.

Design contract:
  classify(text: str) → NormalizedSignal   (never None, never raises)

Three buckets, checked in order with case-insensitive substring matching:
  sad     → score 0.8
  happy   → score 0.8
  neutral → score 0.6 (nothing matched)
"""
from __future__ import annotations
from typing import List, Tuple

from mindecho.services.normalizer import NormalizedSignal

MATCH_SCORE    = 0.8
FALLBACK_SCORE = 0.6

# Order matters: the first bucket with a hit wins.
_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("sad",   ["sad", "depressed", "down"]),
    ("happy", ["happy", "great", "good"]),
]


def classify(text: str) -> NormalizedSignal:
    text_lower = (text or "").lower()
    for label, keywords in _KEYWORDS:
        if any(kw in text_lower for kw in keywords):
            return NormalizedSignal(label=label, score=MATCH_SCORE)
    return NormalizedSignal(label="neutral", score=FALLBACK_SCORE)
