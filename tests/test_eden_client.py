"""Tests for the Eden AI collaborator client."""

import httpx
import pytest

from mindecho.services.eden_client import (
    FACE_PATH,
    STT_PATH,
    TEXT_PATH,
    EdenAPIError,
    EdenClient,
    UploadPayload,
)


def make_client(handler):
    return EdenClient(
        api_key="secret",
        base_url="https://eden.test",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestEdenClient:
    @pytest.mark.asyncio
    async def test_face_posts_multipart_with_bearer(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["ctype"] = request.headers["content-type"]
            seen["body"] = request.read()
            return httpx.Response(200, json={"emotions": [{"label": "happy", "score": 0.9}]})

        client = make_client(handler)
        resp = await client.face_emotion(UploadPayload(b"IMGDATA", "me.jpg", "image/jpeg"))
        await client.aclose()

        assert resp == {"emotions": [{"label": "happy", "score": 0.9}]}
        assert seen["path"] == FACE_PATH
        assert seen["auth"] == "Bearer secret"
        assert seen["ctype"].startswith("multipart/form-data")
        assert b'name="image"' in seen["body"] and b"IMGDATA" in seen["body"]

    @pytest.mark.asyncio
    async def test_speech_to_text_sends_language(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = request.read()
            assert request.url.path == STT_PATH
            assert b'name="language"' in body and b"ko" in body
            return httpx.Response(200, json={"text": "hello"})

        client = make_client(handler)
        assert await client.speech_to_text(UploadPayload(b"WAV"), "ko") == {"text": "hello"}

    @pytest.mark.asyncio
    async def test_text_emotion_sends_text_field(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == TEXT_PATH
            assert b"text=I+am+fine" in request.read()
            return httpx.Response(200, json="calm")

        client = make_client(handler)
        assert await client.text_emotion("I am fine") == "calm"

    @pytest.mark.asyncio
    async def test_http_error_raises_with_detail(self):
        client = make_client(lambda r: httpx.Response(401, json={"error": "bad key"}))
        with pytest.raises(EdenAPIError) as exc:
            await client.text_emotion("x")
        assert exc.value.status_code == 401
        assert exc.value.detail == {"error": "bad key"}

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(EdenAPIError) as exc:
            await client.face_emotion(UploadPayload(b"x"))
        assert exc.value.status_code is None

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self):
        client = make_client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(EdenAPIError):
            await client.text_emotion("x")
