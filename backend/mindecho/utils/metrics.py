"""
Inference latency tracker.

Usage:
    m = MetricsTracker(settings.METRICS_LOG_PATH)
    m.start(user_id)
    m.record_branch("face", 412.0)
    ...
    final = m.finish(modalities=["face", "eeg"])   # InferenceMetrics dataclass
"""
from __future__ import annotations
import time
import json
import os
from dataclasses import dataclass, asdict, field
from typing import Optional, List, Dict

from mindecho.utils.logging import logger

BRANCH_FIELDS = ("face_ms", "audio_ms", "eeg_ms", "fusion_ms")


@dataclass
class InferenceMetrics:
    user_id: str
    face_ms: float = 0.0
    audio_ms: float = 0.0
    eeg_ms: float = 0.0
    fusion_ms: float = 0.0
    total_ms: float = 0.0
    modalities: List[str] = field(default_factory=list)
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.strftime("%Y-%m-%dT%H:%M:%S")

    @property
    def slowest_branch(self) -> Optional[str]:
        """Name of the branch that bounded the request, or None if nothing ran."""
        timings = {k[:-3]: getattr(self, k) for k in ("face_ms", "audio_ms", "eeg_ms")}
        name = max(timings, key=timings.get)
        return name if timings[name] > 0 else None

    def summary(self) -> str:
        return (
            f"total={self.total_ms:.0f}ms "
            f"[face={self.face_ms:.0f} audio={self.audio_ms:.0f} "
            f"eeg={self.eeg_ms:.0f} fusion={self.fusion_ms:.0f}] "
            f"modalities={','.join(self.modalities) or '-'} "
            f"slowest={self.slowest_branch or '-'}"
        )


class MetricsTracker:
    def __init__(self, log_path: str = "logs/metrics.jsonl"):
        self.log_path = log_path
        self._current: Optional[InferenceMetrics] = None
        self._wall_start: float = 0.0

    # ── Record ───────────────────────────────────────────────────────────────

    def start(self, user_id: str) -> "MetricsTracker":
        self._current = InferenceMetrics(user_id=user_id)
        self._wall_start = time.time()
        return self

    def record_branch(self, branch: str, ms: float) -> None:
        key = f"{branch}_ms"
        if self._current and key in BRANCH_FIELDS:
            setattr(self._current, key, ms)

    def record_timings(self, timings: Dict[str, float]) -> None:
        for branch, ms in timings.items():
            self.record_branch(branch, ms)

    def finish(self, modalities: Optional[List[str]] = None) -> Optional[InferenceMetrics]:
        if self._current is None:
            return None
        self._current.total_ms = (time.time() - self._wall_start) * 1000
        self._current.modalities = list(modalities or [])
        self._persist(self._current)
        result = self._current
        self._current = None
        return result

    # ── Persistence ──────────────────────────────────────────────────────────

    def _persist(self, m: InferenceMetrics) -> None:
        try:
            directory = os.path.dirname(self.log_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.log_path, "a") as f:
                f.write(json.dumps(asdict(m)) + "\n")
        except OSError as e:
            logger.warning(f"Metrics: could not persist to {self.log_path} — {e}")

    def load_history(self) -> List[Dict]:
        try:
            with open(self.log_path) as f:
                return [json.loads(line) for line in f if line.strip()]
        except FileNotFoundError:
            return []

    def summary_stats(self) -> Dict:
        history = self.load_history()
        if not history:
            return {}
        stats = {}
        for k in BRANCH_FIELDS + ("total_ms",):
            vals = [h[k] for h in history if k in h]
            if vals:
                stats[k] = {
                    "n": len(vals),
                    "mean": round(sum(vals) / len(vals), 1),
                    "min": round(min(vals), 1),
                    "max": round(max(vals), 1),
                }
        return stats
