"""
HTTP REST endpoints.

POST /api/infer             → multimodal emotion fusion (image / audio / eeg)
POST /api/emotion           → face emotion scores from a base64 image
POST /api/voice/transcribe  → speech recording → transcript
POST /api/voice/chat        → supportive reply in a companion mode
GET  /api/recommendations   → fixed label → exercise table
GET  /api/metrics           → inference latency history
"""
from __future__ import annotations
from typing import Dict, List, Optional

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mindecho.config import settings
from mindecho.services.eden_client import EdenClient, UploadPayload
from mindecho.services.fusion import RECOMMENDATIONS
from mindecho.services.gemini_client import DEFAULT_MODE, VOICE_MODES, GeminiAPIError, GeminiClient
from mindecho.services.orchestrator import InferenceOrchestrator
from mindecho.utils.metrics import MetricsTracker
from mindecho.utils.logging import logger

router = APIRouter()

# ── Lazy service singletons ──────────────────────────────────────────────────
_eden:         Optional[EdenClient]            = None
_orchestrator: Optional[InferenceOrchestrator] = None
_gemini:       Optional[GeminiClient]          = None


def _get_eden() -> EdenClient:
    global _eden;         _eden         = _eden         or EdenClient();                       return _eden
def _get_orchestrator() -> InferenceOrchestrator:
    global _orchestrator; _orchestrator = _orchestrator or InferenceOrchestrator(_get_eden()); return _orchestrator
def _get_gemini() -> GeminiClient:
    global _gemini;       _gemini       = _gemini       or GeminiClient();                     return _gemini


async def close_clients() -> None:
    if _eden is not None:
        await _eden.aclose()


def _failure(status: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": error, **extra})


# ── POST /api/infer ──────────────────────────────────────────────────────────
# Request:  multipart: image?, audio?, eeg? (files), user_id?, language?
# Response: InferResponse | {success: false, error}

class SignalSchema(BaseModel):
    label: str
    score: float = Field(..., ge=0.0, le=1.0)

class EEGSchema(BaseModel):
    anxiety:  float = Field(..., ge=0.0, le=1.0)
    variance: Optional[float] = None

class RecommendationSchema(BaseModel):
    exercise_id: str
    title:       str
    desc:        str

class FusedSchema(BaseModel):
    primary:        str
    confidence:     float = Field(..., ge=0.0, le=1.0)
    recommendation: RecommendationSchema

class RawSchema(BaseModel):
    face:        Optional[SignalSchema] = None
    transcript:  Optional[str]          = None
    textEmotion: Optional[SignalSchema] = None
    eeg:         Optional[EEGSchema]    = None

class InferResponse(BaseModel):
    success: bool = True
    user_id: str
    raw:     RawSchema
    fused:   FusedSchema


async def _payload(upload: Optional[UploadFile]) -> Optional[UploadPayload]:
    """Raises ValueError past MAX_UPLOAD_BYTES; never reads more than limit+1 bytes."""
    if upload is None:
        return None
    limit   = settings.MAX_UPLOAD_BYTES
    too_big = f"{upload.filename or 'upload'} exceeds {limit} bytes"
    if upload.size is not None and upload.size > limit:
        raise ValueError(too_big)
    data = await upload.read(limit + 1)
    if not data:
        return None
    if len(data) > limit:
        raise ValueError(too_big)
    return UploadPayload(
        data=data,
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
    )


@router.post(
    "/infer",
    response_model=InferResponse,
    summary="Multimodal Emotion Fusion",
)
async def infer(
    image:    Optional[UploadFile] = File(None, description="Face image"),
    audio:    Optional[UploadFile] = File(None, description="Speech recording"),
    eeg:      Optional[UploadFile] = File(None, description="EEG JSON: {alpha, beta} or numeric series"),
    user_id:  str                  = Form("guest"),
    language: Optional[str]        = Form(None, description="Speech language hint, e.g. 'en'"),
):
    """
    Each present modality goes to its collaborator; failures degrade that
    modality to null. Returns per-modality diagnostics plus the fused result.
    """
    user_id = user_id or "guest"
    try:
        try:
            image_p, audio_p, eeg_p = await _payload(image), await _payload(audio), await _payload(eeg)
        except ValueError as e:
            return _failure(413, str(e))

        metrics = MetricsTracker(settings.METRICS_LOG_PATH).start(user_id)
        outcome = await _get_orchestrator().run(
            image=image_p,
            audio=audio_p,
            eeg=eeg_p.data if eeg_p else None,
            language=language or settings.DEFAULT_LANGUAGE,
        )
        metrics.record_timings(outcome.timings)
        m = metrics.finish(modalities=outcome.modalities)
        if m:
            logger.info(f"Infer: {m.summary()}", extra={"user_id": user_id})

        return {
            "success": True,
            "user_id": user_id,
            "raw":     outcome.raw_dict(),
            "fused":   outcome.fused.to_dict(),
        }
    except Exception as e:
        logger.error(f"Infer: request failed — {e}", exc_info=True, extra={"user_id": user_id})
        return _failure(500, str(e))


# ── POST /api/emotion ────────────────────────────────────────────────────────

class EmotionRequest(BaseModel):
    imageBase64: Optional[str] = Field(None, description="Base64 image, optionally a data: URL")

class EmotionResponse(BaseModel):
    success:  bool = True
    emotions: Dict[str, float]
    raw:      str


@router.post("/emotion", response_model=EmotionResponse, summary="Face Emotion Scores")
async def analyze_emotion(req: EmotionRequest):
    """Scores happiness / neutral / sadness / anger / fear in [0,1] for one face image."""
    if not req.imageBase64:
        return _failure(400, "Missing base64 image")
    try:
        result = await _get_gemini().analyze_face(req.imageBase64)
    except GeminiAPIError as e:
        logger.error(f"Emotion: Gemini failed — {e}")
        return _failure(500, str(e))
    return {"success": True, **result}


# ── POST /api/voice/transcribe  ·  POST /api/voice/chat ──────────────────────

class TranscribeResponse(BaseModel):
    success:    bool = True
    transcript: str

class ChatTurn(BaseModel):
    role: str
    text: str

class VoiceChatRequest(BaseModel):
    text:         Optional[str]  = None
    history:      List[ChatTurn] = Field(default_factory=list)
    selectedMode: Optional[str]  = Field(None, description="calm | motivate | grounding (default calm)")

class VoiceChatResponse(BaseModel):
    success:   bool = True
    replyText: str
    mode:      str


@router.post("/voice/transcribe", response_model=TranscribeResponse, summary="Speech Transcription")
async def voice_transcribe(file: Optional[UploadFile] = File(None, description="Speech recording")):
    try:
        audio = await _payload(file)
    except ValueError as e:
        return _failure(413, str(e))
    if audio is None:
        return _failure(400, "Missing audio file")

    mime = file.content_type if file.content_type and file.content_type.startswith("audio/") else "audio/webm"
    try:
        transcript = await _get_gemini().transcribe(audio.data, mime)
    except GeminiAPIError as e:
        logger.error(f"Voice: transcription failed — {e}")
        return _failure(500, "Transcription failed", details=str(e))
    return {"success": True, "transcript": transcript}


@router.post("/voice/chat", response_model=VoiceChatResponse, summary="Supportive Companion Reply")
async def voice_chat(req: VoiceChatRequest):
    if not req.text:
        return _failure(400, "Missing text")

    mode = req.selectedMode if req.selectedMode in VOICE_MODES else DEFAULT_MODE
    try:
        reply = await _get_gemini().chat(req.text, [t.model_dump() for t in req.history], mode)
    except GeminiAPIError as e:
        logger.error(f"Voice: chat failed — {e}")
        return _failure(500, "LLM reply failed", details=str(e))
    return {"success": True, "replyText": reply, "mode": mode}


# ── GET /api/recommendations ─────────────────────────────────────────────────

@router.get("/recommendations", summary="Recommendation Table")
async def get_recommendations():
    return {
        label: {"exercise_id": r.exercise_id, "title": r.title, "desc": r.desc}
        for label, r in RECOMMENDATIONS.items()
    }


# ── GET /api/metrics ─────────────────────────────────────────────────────────

@router.get("/metrics", summary="Inference Latency History")
async def get_metrics():
    """Return accumulated inference metrics (from METRICS_LOG_PATH)."""
    tracker = MetricsTracker(settings.METRICS_LOG_PATH)
    return {
        "history": tracker.load_history(),
        "stats":   tracker.summary_stats(),
    }
