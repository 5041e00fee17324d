"""
Biosignal Summarizer — reduces an EEG-like payload to one anxiety scalar.

Accepted payloads (already JSON-decoded):
  {"alpha": 30, "beta": 70}              banded power (or alpha_mean / beta_mean)
  [0.1, 0.4, ...] / [[...], [...]]       raw numeric series, any nesting

Banded:  anxiety = beta / (alpha + beta + 1e-6), clamped to [0,1]
Series:  anxiety = min(1, population_variance / 10)
"""
from __future__ import annotations
import json
from dataclasses import dataclass, asdict
from numbers import Real
from typing import Any, List, Optional

import numpy as np

from mindecho.utils.logging import logger

EPS              = 1e-6
VARIANCE_DIVISOR = 10.0


@dataclass(frozen=True)
class BiosignalSummary:
    anxiety: float
    variance: Optional[float] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        if d["variance"] is None:
            del d["variance"]
        return d


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    return float(value)


def _band(payload: dict, name: str) -> Optional[float]:
    exact = _number(payload.get(name))
    if exact is not None:
        return exact
    return _number(payload.get(f"{name}_mean"))


def _flatten(values: Any, out: List[float]) -> bool:
    """Append every numeric leaf to out; False if any leaf is not a number."""
    for v in values:
        if isinstance(v, (list, tuple)):
            if not _flatten(v, out):
                return False
            continue
        n = _number(v)
        if n is None:
            return False
        out.append(n)
    return True


def _from_bands(alpha: float, beta: float) -> Optional[BiosignalSummary]:
    anxiety = beta / (alpha + beta + EPS)
    if not np.isfinite(anxiety):
        return None
    return BiosignalSummary(anxiety=float(min(1.0, max(0.0, anxiety))))


def _from_series(series: list) -> Optional[BiosignalSummary]:
    flat: List[float] = []
    if not _flatten(series, flat) or not flat:
        return None
    arr      = np.asarray(flat, dtype=np.float64)
    variance = float(np.var(arr))      # population (ddof=0)
    if not np.isfinite(variance):
        return None
    return BiosignalSummary(anxiety=min(1.0, variance / VARIANCE_DIVISOR), variance=variance)


def summarize(raw: Any) -> Optional[BiosignalSummary]:
    try:
        if isinstance(raw, dict):
            alpha, beta = _band(raw, "alpha"), _band(raw, "beta")
            if alpha is not None and beta is not None:
                return _from_bands(alpha, beta)
            return None
        if isinstance(raw, list):
            return _from_series(raw)
        return None
    except Exception as e:
        logger.debug(f"EEG: summarize failed — {e}")
        return None


def summarize_bytes(payload: bytes) -> Optional[BiosignalSummary]:
    """Decode an uploaded UTF-8 JSON file, then summarize it."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"EEG: payload parse failed — {e}")
        return None
    return summarize(parsed)
