"""
Global configuration — override via environment variables or .env file.
"""
from __future__ import annotations
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Server ──────────────────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 4000
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173", "*"]
    LOG_LEVEL: str = "INFO"

    # ── Inference collaborators (Eden AI) ───────────────────────────────────
    EDENAI_BASE_URL: str = "https://api.edenai.run"
    EDENAI_API_KEY: str = ""
    INFERENCE_TIMEOUT_S: float = 45.0     # per external call
    MAX_UPLOAD_BYTES: int = 30 * 1024 * 1024
    DEFAULT_LANGUAGE: str = "en"

    # ── Face score extraction (Gemini) ──────────────────────────────────────
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    # ── Live signal broadcast ───────────────────────────────────────────────
    BROADCAST_ENABLED: bool = True
    BROADCAST_INTERVAL_S: float = 1.5
    BROADCAST_DRIFT: float = 0.03         # max |Δ baseAnxiety| per tick
    BROADCAST_INITIAL_ANXIETY: float = 0.5

    # ── Metrics ─────────────────────────────────────────────────────────────
    METRICS_LOG_PATH: str = "logs/metrics.jsonl"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
