"""
WebSocket signal stream: /ws/signals

Protocol (text frames, JSON):
──────────────────────────────────────────────────────────────────────────────
Connect
  /ws/signals?neurofeedback=false&camera=true&audio=true   (all optional, default true)

Client → Server
  { "type": "consent", "neurofeedback"?: bool, "camera"?: bool, "audio"?: bool }
      flags must be JSON booleans; any other value → error, consent unchanged

Server → Client
  { "type": "ack",     "consent": {neurofeedback, camera, audio} }
  { "type": "signals", "neuro"?: {alpha, beta},
                       "emotion"?: {smile, frown, neutral},
                       "acoustic"?: {pitch, variance} }          every tick
  { "type": "error",   "message": str }
──────────────────────────────────────────────────────────────────────────────
"""
from __future__ import annotations
import json
import uuid
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from mindecho.services.broadcaster import CONSENT_KEYS, ConnectionConsent, SignalBroadcaster
from mindecho.utils.logging import logger

ws_router = APIRouter()

_FALSE_WORDS  = {"0", "false", "no", "off"}

# ── Broadcaster singleton (one per process) ──────────────────────────────────
_broadcaster: Optional[SignalBroadcaster] = None


def get_broadcaster() -> SignalBroadcaster:
    global _broadcaster
    _broadcaster = _broadcaster or SignalBroadcaster()
    return _broadcaster


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the broadcaster's SignalTransport."""

    def __init__(self, ws: WebSocket):
        self.ws = ws
        self.connection_id = str(uuid.uuid4())[:8]

    def is_alive(self) -> bool:
        return (
            self.ws.client_state == WebSocketState.CONNECTED
            and self.ws.application_state == WebSocketState.CONNECTED
        )

    async def send(self, event: str, payload: dict) -> None:
        await self.ws.send_text(json.dumps({"type": event, **payload}, ensure_ascii=False))


def consent_from_query(params) -> ConnectionConsent:
    flags = {
        k: params[k].strip().lower() not in _FALSE_WORDS
        for k in CONSENT_KEYS if k in params
    }
    return ConnectionConsent().merged(flags)


async def _send(ws: WebSocket, payload: dict) -> None:
    if ws.application_state != WebSocketState.CONNECTED:
        return
    await ws.send_text(json.dumps(payload, ensure_ascii=False))


# ── WebSocket handler ────────────────────────────────────────────────────────

@ws_router.websocket("/ws/signals")
async def signals_ws(ws: WebSocket):
    await ws.accept()
    transport   = WebSocketTransport(ws)
    cid         = transport.connection_id
    broadcaster = get_broadcaster()

    consent = broadcaster.register_client(transport, consent_from_query(ws.query_params))
    logger.info(f"[WS {cid}] connected consent={consent.to_dict()}")

    try:
        async for raw in ws.iter_text():
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await _send(ws, {"type": "error", "message": "Invalid JSON frame."})
                continue
            if not isinstance(msg, dict):
                await _send(ws, {"type": "error", "message": "Frame must be a JSON object."})
                continue

            t = msg.get("type")

            # ── consent ──────────────────────────────────────────────────────
            if t == "consent":
                current = broadcaster.consent_of(transport) or ConnectionConsent()
                try:
                    updated = current.merged(msg)
                except ValueError as e:
                    await _send(ws, {"type": "error", "message": str(e)})
                    continue
                broadcaster.update_consent(transport, updated)
                logger.info(f"[WS {cid}] consent={updated.to_dict()}")
                await _send(ws, {"type": "ack", "consent": updated.to_dict()})

            else:
                await _send(ws, {"type": "error", "message": f"Unknown message type: {t!r}"})

    except WebSocketDisconnect:
        logger.info(f"[WS {cid}] disconnected")
    finally:
        broadcaster.unregister_client(transport)
