"""
MindEcho affect backend — FastAPI entry point.

Start:
    uvicorn mindecho.main:app --reload --host 0.0.0.0 --port 4000
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mindecho.config import settings
from mindecho.api.routes import router, close_clients
from mindecho.api.websocket import ws_router, get_broadcaster
from mindecho.utils.logging import setup_logging
from mindecho.utils.logging import logger

setup_logging(settings.LOG_LEVEL)

app = FastAPI(
    title       = "MindEcho Affect Backend",
    version     = "0.1.0",
    description = (
        "Multimodal emotion fusion: Face + Speech/Text + EEG → "
        "primary emotion, confidence, recommendation. "
        "Live consent-filtered signal stream on /ws/signals."
    ),
    docs_url    = "/docs",
    redoc_url   = "/redoc",
)

# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins     = settings.ALLOWED_ORIGINS,
    allow_credentials = True,
    allow_methods     = ["*"],
    allow_headers     = ["*"],
)

# ── Routes ────────────────────────────────────────────────────────────────────
app.include_router(router,    prefix="/api",  tags=["Inference"])
app.include_router(ws_router,                 tags=["WebSocket"])


# ── Lifecycle: broadcast loop + HTTP clients ─────────────────────────────────
@app.on_event("startup")
async def _start_broadcaster():
    if not settings.BROADCAST_ENABLED:
        logger.info("Broadcast: disabled by configuration")
        return
    get_broadcaster().start()


@app.on_event("shutdown")
async def _shutdown():
    await get_broadcaster().aclose()
    await close_clients()


# ── Health ───────────────────────────────────────────────────────────────────
@app.get("/health", tags=["System"])
async def health():
    broadcaster = get_broadcaster()
    return {
        "status":      "ok",
        "broadcaster": broadcaster.is_running,
        "connections": broadcaster.connection_count,
    }
