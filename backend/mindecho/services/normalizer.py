"""
Signal Normalizer — shapes opaque inference responses into (label, score).

Collaborators answer in several shapes:

  [{"label"|"name": str, "score": float}, ...]      candidate list
  {"emotions" | "result": [...candidates]}          wrapped candidate list
  {"label": str, "score"?: float}                   single label
  "joy"                                             bare string

decode_response() classifies the raw value once into a tagged variant;
normalize() turns that variant into a NormalizedSignal or None.
Neither function raises.
"""
from __future__ import annotations
from dataclasses import dataclass, asdict
from numbers import Real
from typing import Any, List, Optional, Tuple, Union

from mindecho.utils.logging import logger

DEFAULT_SCORE     = 0.8    # candidate / label without an explicit score
BARE_STRING_SCORE = 0.6    # bare string carries no score at all

_LIST_KEYS = ("emotions", "result")


@dataclass(frozen=True)
class NormalizedSignal:
    label: str
    score: float

    def to_dict(self) -> dict:
        return asdict(self)


# ── Response variants ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CandidateList:
    candidates: Tuple[NormalizedSignal, ...]


@dataclass(frozen=True)
class SingleLabel:
    signal: NormalizedSignal


@dataclass(frozen=True)
class BareString:
    label: str


@dataclass(frozen=True)
class Unrecognized:
    reason: str


ResponseVariant = Union[CandidateList, SingleLabel, BareString, Unrecognized]


def _clean_label(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    label = value.strip().lower()
    return label or None


def _coerce_score(value: Any) -> Optional[float]:
    """None → DEFAULT_SCORE; non-numeric → None (unusable); numbers clamp to [0,1]."""
    if value is None:
        return DEFAULT_SCORE
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    score = float(value)
    if score != score:      # NaN
        return None
    return min(1.0, max(0.0, score))


def _candidate(item: Any) -> Optional[NormalizedSignal]:
    if not isinstance(item, dict):
        return None
    label = _clean_label(item.get("label")) or _clean_label(item.get("name"))
    score = _coerce_score(item.get("score"))
    if label is None or score is None:
        return None
    return NormalizedSignal(label=label, score=score)


def _candidate_list(items: List[Any]) -> ResponseVariant:
    candidates = tuple(c for c in (_candidate(i) for i in items) if c is not None)
    if not candidates:
        return Unrecognized("no usable candidates")
    return CandidateList(candidates)


def decode_response(raw: Any) -> ResponseVariant:
    """Single disambiguation step at the collaborator boundary."""
    try:
        if isinstance(raw, str):
            label = _clean_label(raw)
            return BareString(label) if label else Unrecognized("empty string")

        if isinstance(raw, list):
            if not raw:
                return Unrecognized("empty list")
            return _candidate_list(raw)

        if isinstance(raw, dict):
            for key in _LIST_KEYS:
                items = raw.get(key)
                if isinstance(items, list) and items:
                    return _candidate_list(items)
            if "label" in raw:
                signal = _candidate(raw)
                if signal is not None:
                    return SingleLabel(signal)
                return Unrecognized("unusable label/score")

        return Unrecognized(f"unsupported shape: {type(raw).__name__}")
    except Exception as e:
        logger.debug(f"Normalizer: inspection failed — {e}")
        return Unrecognized(str(e))


def normalize(raw: Any) -> Optional[NormalizedSignal]:
    """
    Map a raw collaborator response to a NormalizedSignal, or None when the
    source is absent or unusable. Among candidates the highest score wins;
    equal scores keep the first one seen.
    """
    variant = decode_response(raw)

    if isinstance(variant, CandidateList):
        best = variant.candidates[0]
        for c in variant.candidates[1:]:
            if c.score > best.score:
                best = c
        return best
    if isinstance(variant, SingleLabel):
        return variant.signal
    if isinstance(variant, BareString):
        return NormalizedSignal(label=variant.label, score=BARE_STRING_SCORE)
    return None
