"""
Inference Orchestrator — fans one /infer request out to the collaborators.

  image ─► face_emotion ─► normalize ───────────────────────────┐
  audio ─► speech_to_text ─► transcript ─► text_emotion ─► normalize
                                          └─(fails)─► keyword_classifier ─┤
  eeg   ─► summarize_bytes ────────────────────────────────────────────────┤
                                                                           ▼
                                                                         fuse

The three branches run concurrently; steps inside a branch are sequential.
Every external call is bounded by `timeout_s`. A failing branch is logged
and becomes None; it never cancels its siblings or fails the request.
"""
from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from mindecho.config import settings
from mindecho.models import keyword_classifier
from mindecho.services.biosignal import BiosignalSummary, summarize_bytes
from mindecho.services.eden_client import UploadPayload
from mindecho.services.fusion import FusionInput, FusionResult, fuse
from mindecho.services.normalizer import NormalizedSignal, normalize
from mindecho.utils.logging import logger

UNRECOGNIZED_TEXT = NormalizedSignal(label="neutral", score=0.7)

_TRANSCRIPT_KEYS = ("transcription", "text", "result")


class InferenceBackend(Protocol):
    async def face_emotion(self, image: UploadPayload) -> Any: ...
    async def speech_to_text(self, audio: UploadPayload, language: str) -> Any: ...
    async def text_emotion(self, text: str) -> Any: ...


@dataclass
class InferenceOutcome:
    face: Optional[NormalizedSignal]
    transcript: Optional[str]
    text_emotion: Optional[NormalizedSignal]
    eeg: Optional[BiosignalSummary]
    fused: FusionResult
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def modalities(self) -> List[str]:
        present = []
        if self.face is not None:
            present.append("face")
        if self.text_emotion is not None:
            present.append("text")
        if self.eeg is not None:
            present.append("eeg")
        return present

    def raw_dict(self) -> dict:
        return {
            "face":        self.face.to_dict() if self.face else None,
            "transcript":  self.transcript,
            "textEmotion": self.text_emotion.to_dict() if self.text_emotion else None,
            "eeg":         self.eeg.to_dict() if self.eeg else None,
        }


def extract_transcript(resp: Any) -> Optional[str]:
    """First non-empty string among transcription / text / result."""
    if isinstance(resp, str):
        return resp.strip() or None
    if isinstance(resp, dict):
        for key in _TRANSCRIPT_KEYS:
            value = resp.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class InferenceOrchestrator:
    def __init__(self, backend: InferenceBackend, timeout_s: Optional[float] = None):
        self.backend   = backend
        self.timeout_s = timeout_s or settings.INFERENCE_TIMEOUT_S

    async def _call(self, fn: Callable[..., Awaitable[Any]], *args) -> Any:
        return await asyncio.wait_for(fn(*args), timeout=self.timeout_s)

    # ── Branches ──────────────────────────────────────────────────────────────

    async def _face_branch(self, image: UploadPayload) -> Optional[NormalizedSignal]:
        try:
            resp = await self._call(self.backend.face_emotion, image)
        except Exception as e:
            logger.warning(f"Face: inference failed — {e!r}", extra={"modality": "face"})
            return None
        signal = normalize(resp)
        if signal is None:
            logger.info("Face: unrecognized response shape", extra={"modality": "face"})
        return signal

    async def _audio_branch(self, audio: UploadPayload, language: str):
        try:
            stt = await self._call(self.backend.speech_to_text, audio, language)
        except Exception as e:
            logger.warning(f"Audio: speech-to-text failed — {e!r}", extra={"modality": "audio"})
            return None, None

        transcript = extract_transcript(stt)
        if not transcript:
            logger.info("Audio: empty transcript", extra={"modality": "audio"})
            return None, None

        try:
            resp = await self._call(self.backend.text_emotion, transcript)
        except Exception as e:
            logger.warning(
                f"Text: emotion service failed, using keyword fallback — {e!r}",
                extra={"modality": "text"},
            )
            return transcript, keyword_classifier.classify(transcript)

        return transcript, normalize(resp) or UNRECOGNIZED_TEXT

    async def _eeg_branch(self, eeg: bytes) -> Optional[BiosignalSummary]:
        summary = summarize_bytes(eeg)
        if summary is None:
            logger.info("EEG: payload not usable", extra={"modality": "eeg"})
        return summary

    async def _timed(self, name: str, coro: Awaitable[Any], timings: Dict[str, float]) -> Any:
        t0 = time.time()
        try:
            return await coro
        finally:
            timings[name] = round((time.time() - t0) * 1000, 2)

    # ── Public API ────────────────────────────────────────────────────────────

    async def run(
        self,
        image:    Optional[UploadPayload] = None,
        audio:    Optional[UploadPayload] = None,
        eeg:      Optional[bytes]         = None,
        language: Optional[str]           = None,
    ) -> InferenceOutcome:
        language = language or settings.DEFAULT_LANGUAGE
        timings: Dict[str, float] = {}

        async def _none():
            return None

        async def _no_audio():
            return None, None

        face_res, audio_res, eeg_res = await asyncio.gather(
            self._timed("face",  self._face_branch(image), timings) if image else _none(),
            self._timed("audio", self._audio_branch(audio, language), timings) if audio else _no_audio(),
            self._timed("eeg",   self._eeg_branch(eeg), timings) if eeg else _none(),
            return_exceptions=True,
        )

        face = None if isinstance(face_res, BaseException) else face_res
        eeg_summary = None if isinstance(eeg_res, BaseException) else eeg_res
        transcript, text = (None, None) if isinstance(audio_res, BaseException) else audio_res
        for name, res in (("face", face_res), ("audio", audio_res), ("eeg", eeg_res)):
            if isinstance(res, BaseException):
                logger.error(f"{name.capitalize()}: branch crashed — {res!r}", extra={"modality": name})

        t0 = time.time()
        fused = fuse(FusionInput(face=face, text=text, eeg=eeg_summary))
        timings["fusion"] = round((time.time() - t0) * 1000, 2)

        return InferenceOutcome(
            face=face,
            transcript=transcript,
            text_emotion=text,
            eeg=eeg_summary,
            fused=fused,
            timings=timings,
        )
