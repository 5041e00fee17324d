"""
Eden AI client — the three opaque inference collaborators.

  face_emotion(image)              POST /v2/image/face_detection   (file: image)
  speech_to_text(audio, language)  POST /v2/audio/speech_to_text  (file: audio, language)
  text_emotion(text)               POST /v2/text/emotion           (text)

All requests are form posts (multipart when a file is attached) with a
Bearer key. Responses are returned as decoded JSON, untouched; shaping
them is the normalizer's job.
Non-2xx answers raise EdenAPIError.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from mindecho.config import settings
from mindecho.utils.logging import logger

FACE_PATH = "/v2/image/face_detection"
STT_PATH  = "/v2/audio/speech_to_text"
TEXT_PATH = "/v2/text/emotion"


class EdenAPIError(RuntimeError):
    def __init__(self, path: str, status_code: Optional[int], detail: Any):
        self.path        = path
        self.status_code = status_code
        self.detail      = detail
        super().__init__(f"Eden API error on {path} ({status_code}): {detail}")


@dataclass(frozen=True)
class UploadPayload:
    data: bytes
    filename: str = "upload"
    content_type: str = "application/octet-stream"

    def as_file(self) -> Tuple[str, bytes, str]:
        return (self.filename, self.data, self.content_type)


class EdenClient:
    def __init__(
        self,
        api_key:   Optional[str]   = None,
        base_url:  Optional[str]   = None,
        timeout:   Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key  = api_key  if api_key  is not None else settings.EDENAI_API_KEY
        self.base_url = base_url or settings.EDENAI_BASE_URL
        self.timeout  = timeout  or settings.INFERENCE_TIMEOUT_S
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self.api_key:
            logger.warning("Eden: EDENAI_API_KEY is not set — Eden calls will fail")

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── Transport ─────────────────────────────────────────────────────────────

    async def post_form(
        self,
        path:   str,
        fields: Optional[Dict[str, Any]] = None,
        files:  Optional[Dict[str, UploadPayload]] = None,
    ) -> Any:
        data  = {k: str(v) for k, v in (fields or {}).items() if v is not None}
        parts = {k: f.as_file() for k, f in (files or {}).items() if f is not None}

        try:
            resp = await self._http().post(
                path,
                data=data,
                # httpx only switches to multipart when files are present
                files=parts or None,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise EdenAPIError(path, None, str(e) or type(e).__name__) from e

        if resp.status_code >= 400:
            try:
                detail = resp.json()
            except ValueError:
                detail = resp.text[:400]
            raise EdenAPIError(path, resp.status_code, detail)

        try:
            return resp.json()
        except ValueError as e:
            raise EdenAPIError(path, resp.status_code, f"invalid JSON: {e}") from e

    # ── Collaborators ─────────────────────────────────────────────────────────

    async def face_emotion(self, image: UploadPayload) -> Any:
        return await self.post_form(FACE_PATH, files={"image": image})

    async def speech_to_text(self, audio: UploadPayload, language: str) -> Any:
        return await self.post_form(STT_PATH, fields={"language": language}, files={"audio": audio})

    async def text_emotion(self, text: str) -> Any:
        return await self.post_form(TEXT_PATH, fields={"text": text})
