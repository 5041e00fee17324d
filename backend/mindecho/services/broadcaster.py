"""
Live Signal Broadcaster — consent-filtered synthetic sensor stream.

State machine:
  Stopped ──start()──► Running ──stop()──► Stopped     (both idempotent)

While running, one asyncio task loops `sleep(interval) → tick()`. A tick:
  1. random-walks base_anxiety by U(−drift, +drift), clamped to [0,1]
  2. for every registered connection (snapshot of the registry):
       dead transport           → evict
       no consented modality    → skip
       otherwise                → send("signals", {neuro?, emotion?, acoustic?})
  3. sends run concurrently, each bounded by send_timeout_s (default: one
     interval); a send that raises or times out evicts its connection

Readings (a = base_anxiety, U = fresh uniform noise per value):
  neuro    alpha = (1−a)·70 + U(0,30)        beta  = a·70 + U(0,30)
  emotion  smile = (1−a)·0.6 + U(0,0.4)      frown = a·0.6 + U(0,0.4)   neutral = U(0,0.5)
  acoustic pitch = 100 + a·100 + U(−10,10)   variance = a·5 + U(0,1)
"""
from __future__ import annotations
import asyncio
import random
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Optional, Protocol, Tuple

from mindecho.config import settings
from mindecho.utils.logging import logger

SIGNALS_EVENT = "signals"
CONSENT_KEYS  = ("neurofeedback", "camera", "audio")


@dataclass(frozen=True)
class ConnectionConsent:
    neurofeedback: bool = True
    camera: bool = True
    audio: bool = True

    def merged(self, update: Dict[str, Any]) -> "ConnectionConsent":
        """
        Flags present in `update` replace ours; absent ones are kept.
        Raises ValueError if a present flag is not a bool ("false", 0, None …).
        """
        changes = {}
        for key in CONSENT_KEYS:
            if key not in update:
                continue
            if not isinstance(update[key], bool):
                raise ValueError(f"consent flag {key!r} must be true or false, got {update[key]!r}")
            changes[key] = update[key]
        return replace(self, **changes)

    @property
    def any(self) -> bool:
        return self.neurofeedback or self.camera or self.audio

    def to_dict(self) -> dict:
        return asdict(self)


class SignalTransport(Protocol):
    connection_id: str

    def is_alive(self) -> bool: ...

    async def send(self, event: str, payload: dict) -> None: ...


class SignalBroadcaster:
    def __init__(
        self,
        interval_s:      Optional[float] = None,
        drift:           Optional[float] = None,
        initial_anxiety: Optional[float] = None,
        rng:             Optional[random.Random] = None,
        send_timeout_s:  Optional[float] = None,
    ):
        self.interval_s   = interval_s if interval_s is not None else settings.BROADCAST_INTERVAL_S
        # a send slower than one tick is a stalled peer
        self.send_timeout_s = send_timeout_s if send_timeout_s is not None else self.interval_s
        self.drift        = drift if drift is not None else settings.BROADCAST_DRIFT
        self.base_anxiety = _clamp(
            initial_anxiety if initial_anxiety is not None else settings.BROADCAST_INITIAL_ANXIETY
        )
        self.rng = rng or random.Random()
        # connection_id → (transport, consent); consent values are immutable and swapped whole
        self._clients: Dict[str, Tuple[SignalTransport, ConnectionConsent]] = {}
        self._task: Optional[asyncio.Task] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="signal-broadcaster")
        logger.info(f"Broadcast: started (interval={self.interval_s}s)")

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Broadcast: stopped")

    async def aclose(self) -> None:
        """stop() and wait for the loop task to finish unwinding."""
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Broadcast: tick failed — {e}", exc_info=True)

    # ── Registry ──────────────────────────────────────────────────────────────

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    def register_client(self, transport: SignalTransport,
                        consent: Optional[ConnectionConsent] = None) -> ConnectionConsent:
        consent = consent or ConnectionConsent()
        self._clients[transport.connection_id] = (transport, consent)
        logger.info("Broadcast: client registered", extra={"connection_id": transport.connection_id})
        return consent

    def unregister_client(self, transport: SignalTransport) -> None:
        if self._clients.pop(transport.connection_id, None) is not None:
            logger.info("Broadcast: client unregistered", extra={"connection_id": transport.connection_id})

    def update_consent(self, transport: SignalTransport,
                       consent: ConnectionConsent) -> Optional[ConnectionConsent]:
        """Replace a registered connection's consent; unknown connections are ignored."""
        entry = self._clients.get(transport.connection_id)
        if entry is None:
            return None
        self._clients[transport.connection_id] = (entry[0], consent)
        return consent

    def consent_of(self, transport: SignalTransport) -> Optional[ConnectionConsent]:
        entry = self._clients.get(transport.connection_id)
        return entry[1] if entry else None

    # ── Signal synthesis ──────────────────────────────────────────────────────

    def drift_baseline(self) -> float:
        self.base_anxiety = _clamp(self.base_anxiety + self.rng.uniform(-self.drift, self.drift))
        return self.base_anxiety

    def build_signals(self, consent: ConnectionConsent, anxiety: float) -> Dict[str, dict]:
        u = self.rng.uniform
        signals: Dict[str, dict] = {}

        if consent.neurofeedback:
            signals["neuro"] = {
                "alpha": round((1 - anxiety) * 70 + u(0, 30), 2),
                "beta":  round(anxiety * 70 + u(0, 30), 2),
            }
        if consent.camera:
            signals["emotion"] = {
                "smile":   round((1 - anxiety) * 0.6 + u(0, 0.4), 3),
                "frown":   round(anxiety * 0.6 + u(0, 0.4), 3),
                "neutral": round(u(0, 0.5), 3),
            }
        if consent.audio:
            signals["acoustic"] = {
                "pitch":    round(100 + anxiety * 100 + u(-10, 10), 2),
                "variance": round(anxiety * 5 + u(0, 1), 2),
            }
        return signals

    async def tick(self) -> int:
        """Run one emission round; returns the number of connections signalled."""
        anxiety = self.drift_baseline()
        targets = []

        for connection_id, (transport, consent) in list(self._clients.items()):
            if not transport.is_alive():
                self._evict(connection_id, transport, "transport closed")
                continue
            if not consent.any:
                continue
            targets.append((connection_id, transport, self.build_signals(consent, anxiety)))

        if not targets:
            return 0

        # all sends run together; none may hold the tick past send_timeout_s
        results = await asyncio.gather(
            *(
                asyncio.wait_for(transport.send(SIGNALS_EVENT, signals), timeout=self.send_timeout_s)
                for _, transport, signals in targets
            ),
            return_exceptions=True,
        )

        sent = 0
        for (connection_id, transport, _), result in zip(targets, results):
            if isinstance(result, asyncio.TimeoutError):
                self._evict(connection_id, transport, f"send timed out after {self.send_timeout_s}s")
            elif isinstance(result, BaseException):
                self._evict(connection_id, transport, f"send failed: {result!r}")
            else:
                sent += 1
        return sent

    def _evict(self, connection_id: str, transport: SignalTransport, reason: str) -> None:
        entry = self._clients.get(connection_id)
        # a reconnect may already have replaced the entry under the same id
        if entry is not None and entry[0] is transport:
            del self._clients[connection_id]
            logger.info(f"Broadcast: evicted ({reason})", extra={"connection_id": connection_id})


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))
