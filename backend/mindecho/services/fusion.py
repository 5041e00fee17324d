"""
Fusion Engine — weighted voting over the three optional modalities.

  votes[label] += w_face · face.score
  votes[label] += w_text · text.score
  votes[eeg_label(anxiety)] += w_eeg · (1 − |0.5 − anxiety|)

primary    = label with the largest vote (first inserted wins ties)
confidence = min(1, top / Σ votes), 2 decimals

The EEG vote is largest near anxiety=0.5 and shrinks toward the extremes:
extreme readings are the ones most likely to be sensor noise.
"""
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from mindecho.services.biosignal import BiosignalSummary
from mindecho.services.normalizer import NormalizedSignal

WEIGHTS: Dict[str, float] = {"face": 0.5, "text": 0.35, "eeg": 0.15}

ANXIOUS_ABOVE = 0.6
CALM_BELOW    = 0.35

EMPTY_CONFIDENCE = 0.5


@dataclass(frozen=True)
class Recommendation:
    exercise_id: str
    title: str
    desc: str


# ── Recommendation table ─────────────────────────────────────────────────────
RECOMMENDATIONS: Dict[str, Recommendation] = {
    "anxious":   Recommendation("breathing_2min", "2-min breathing",   "Box breathing: 4-4-4-4 for 2 minutes."),
    "calm":      Recommendation("journaling",     "Quick journal",     "Write 1 line about how you feel."),
    "happy":     Recommendation("celebrate",      "Micro celebration", "Take 30s to smile and stretch."),
    "sad":       Recommendation("gentle_move",    "Gentle movement",   "Try a short walk or stretch."),
    "focused":   Recommendation("micro_task",     "Short sprint",      "Use this focus for a 10-min task."),
    "energized": Recommendation("micro_sprint",   "Short sprint",      "Channel energy into a short productivity sprint."),
    "neutral":   Recommendation("grounding",      "Grounding",         "Grounding exercise: 5-4-3-2-1."),
}


def recommend(label: str) -> Recommendation:
    return RECOMMENDATIONS.get(label, RECOMMENDATIONS["neutral"])


@dataclass(frozen=True)
class FusionInput:
    face: Optional[NormalizedSignal] = None
    text: Optional[NormalizedSignal] = None
    eeg:  Optional[BiosignalSummary] = None


@dataclass(frozen=True)
class FusionResult:
    primary: str
    confidence: float
    recommendation: Recommendation

    def to_dict(self) -> dict:
        return asdict(self)


def eeg_label(anxiety: float) -> str:
    if anxiety > ANXIOUS_ABOVE:
        return "anxious"
    if anxiety < CALM_BELOW:
        return "calm"
    return "neutral"


def eeg_weight(anxiety: float) -> float:
    return WEIGHTS["eeg"] * (1 - abs(0.5 - anxiety))


def collect_votes(inp: FusionInput) -> Dict[str, float]:
    votes: Dict[str, float] = {}

    def add(label: str, weight: float) -> None:
        key = label.lower()
        votes[key] = votes.get(key, 0.0) + weight

    if inp.face is not None:
        add(inp.face.label, WEIGHTS["face"] * inp.face.score)
    if inp.text is not None:
        add(inp.text.label, WEIGHTS["text"] * inp.text.score)
    if inp.eeg is not None:
        add(eeg_label(inp.eeg.anxiety), eeg_weight(inp.eeg.anxiety))
    return votes


def fuse(inp: FusionInput) -> FusionResult:
    votes = collect_votes(inp)
    if not votes:
        return FusionResult("neutral", EMPTY_CONFIDENCE, recommend("neutral"))

    # sorted() is stable: equal weights keep insertion order
    ranked = sorted(votes.items(), key=lambda kv: kv[1], reverse=True)
    primary, top = ranked[0]
    total = sum(votes.values())
    confidence = min(1.0, top / total) if total > 0 else 0.0

    return FusionResult(primary, round(confidence, 2), recommend(primary))
