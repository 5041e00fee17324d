"""
Gemini client — face scores, speech transcription and supportive chat.

Face: the model is prompted to answer with lines of `name: value` for a fixed
set of emotions; extract_emotion_scores() parses that reply. Unknown names are
ignored, missing ones stay 0, values are capped at 1.

Voice: transcribe() sends inline audio with a transcription prompt; chat()
replies to one user turn in the tone of a companion mode (calm / motivate /
grounding), with prior turns rendered into the prompt.
"""
from __future__ import annotations
import base64
import binascii
import re
from typing import Dict, List, Optional

import httpx

from mindecho.config import settings
from mindecho.utils.logging import logger

EMOTION_KEYS = ("happiness", "neutral", "sadness", "anger", "fear")

_SCORE_RE = re.compile(r"(\w+):\s*(\d+(?:\.\d+)?|\.\d+)", re.IGNORECASE)

_FACE_PROMPT = (
    "Analyze the human face in this image.\n"
    "Return ONLY these fields with numeric values between 0 and 1:\n\n"
    + "".join(f"{k}:\n" for k in EMOTION_KEYS)
)

_TRANSCRIBE_PROMPT = (
    "Transcribe the following audio to text. "
    "If the audio is not English, transcribe it in the original language."
)

# ── Companion modes (system prompts) ─────────────────────────────────────────
VOICE_MODES: Dict[str, str] = {
    "calm": (
        "You are a gentle, slow, calming wellbeing companion. Use soft reassuring "
        "language, short sentences, and suggest breathing or grounding when appropriate."
    ),
    "motivate": (
        "You are energetic, uplifting, and encouraging. Use motivating language, "
        "positive affirmations, and short actionable steps."
    ),
    "grounding": (
        "You give short, simple grounding prompts and quick exercises to stabilize "
        "attention. Keep responses short (1-2 sentences)."
    ),
}
DEFAULT_MODE = "calm"
MAX_HISTORY  = 8


class GeminiAPIError(RuntimeError):
    pass


def extract_emotion_scores(text: str) -> Dict[str, float]:
    scores = {k: 0.0 for k in EMOTION_KEYS}
    for name, raw in _SCORE_RE.findall(text or ""):
        key = name.lower()
        if key not in scores:
            continue
        scores[key] = min(1.0, float(raw))
    return scores


def split_data_url(image_b64: str) -> tuple[str, str]:
    """'data:image/png;base64,AAAA' → ('image/png', 'AAAA'); bare base64 → jpeg."""
    if image_b64.startswith("data:"):
        header, _, data = image_b64.partition(",")
        mime = header[5:].split(";")[0] or "image/jpeg"
        return mime, data
    return "image/jpeg", image_b64


def build_chat_prompt(text: str, history: Optional[List[dict]] = None, mode: str = DEFAULT_MODE) -> str:
    """Unknown modes fall back to calm; only the last MAX_HISTORY turns are kept."""
    system = VOICE_MODES.get(mode, VOICE_MODES[DEFAULT_MODE])
    turns = "\n".join(
        f"{'User' if m.get('role') == 'user' else 'Assistant'}: {m.get('text', '')}"
        for m in (history or [])[-MAX_HISTORY:]
    )
    return (
        f"SYSTEM:\n{system}\n\n"
        f"Conversation:\n{turns}\n\n"
        f"User: {text}\n\n"
        "Reply in a supportive manner appropriate to the system instructions. "
        "Keep replies concise."
    )


class GeminiClient:
    def __init__(
        self,
        api_key:   Optional[str]   = None,
        model:     Optional[str]   = None,
        base_url:  Optional[str]   = None,
        timeout:   Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key  = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model    = model    or settings.GEMINI_MODEL
        self.base_url = base_url or settings.GEMINI_BASE_URL
        self.timeout  = timeout  or settings.INFERENCE_TIMEOUT_S
        self._transport = transport

    async def generate(self, parts: List[dict]) -> str:
        """POST one generateContent turn; returns the concatenated reply text."""
        if not self.api_key:
            raise GeminiAPIError("GEMINI_API_KEY is not set")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(url, params={"key": self.api_key}, json={"contents": [{"parts": parts}]})
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPError as e:
                raise GeminiAPIError(f"Gemini request failed: {e}") from e
            except ValueError as e:
                raise GeminiAPIError(f"Gemini returned a non-JSON body: {e}") from e

        try:
            reply_parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise GeminiAPIError(f"Gemini response missing content: {e}") from e
        return "".join(p.get("text", "") for p in reply_parts if isinstance(p, dict))

    async def analyze_face(self, image_b64: str) -> Dict:
        """Returns {"emotions": {name: score}, "raw": model_text}."""
        mime, data = split_data_url(image_b64)
        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise GeminiAPIError(f"image is not valid base64: {e}") from e

        text = await self.generate([
            {"inline_data": {"mime_type": mime, "data": data}},
            {"text": _FACE_PROMPT},
        ])
        logger.info(f"Gemini: face analysis reply ({len(text)} chars)")
        return {"emotions": extract_emotion_scores(text), "raw": text}

    async def transcribe(self, audio: bytes, mime: str = "audio/webm") -> str:
        text = await self.generate([
            {"text": _TRANSCRIBE_PROMPT},
            {"inline_data": {"mime_type": mime, "data": base64.b64encode(audio).decode("ascii")}},
        ])
        logger.info(f"Gemini: transcript ({len(text)} chars)")
        return text.strip()

    async def chat(self, text: str, history: Optional[List[dict]] = None, mode: str = DEFAULT_MODE) -> str:
        reply = await self.generate([{"text": build_chat_prompt(text, history, mode)}])
        logger.info(f"Gemini: chat reply mode={mode} ({len(reply)} chars)")
        return reply.strip()
