"""
Tests for the outbound messaging client (httpx.MockTransport, no network)
"""

import json

import httpx
import pytest

from orderbot.schemas.messaging import ImageMessage, TextMessage
from orderbot.services.messaging_service import LineMessagingClient

BASE_URL = "https://api.example.test/v2/bot"


def _client(handler, token="token"):
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return LineMessagingClient(access_token=token, base_url=BASE_URL, client=http)


class TestReplyAndPush:

    @pytest.mark.asyncio
    async def test_reply_wraps_plain_text(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={})

        await _client(handler).reply("rt-1", "你好")
        path, payload = seen[0]
        assert path.endswith("/message/reply")
        assert payload == {"replyToken": "rt-1", "messages": [{"type": "text", "text": "你好"}]}

    @pytest.mark.asyncio
    async def test_image_messages_use_platform_field_names(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={})

        url = "https://example.com/menu.png"
        await _client(handler).reply("rt", [ImageMessage.from_url(url), TextMessage(text="菜單")])
        assert seen[0]["messages"][0] == {
            "type": "image",
            "originalContentUrl": url,
            "previewImageUrl": url,
        }

    @pytest.mark.asyncio
    async def test_push_success(self):
        client = _client(lambda request: httpx.Response(200, json={}))
        assert await client.push("U1", "新訂單") is True

    @pytest.mark.asyncio
    async def test_push_rejected(self):
        client = _client(lambda request: httpx.Response(400, json={"message": "not a friend"}))
        assert await client.push("U1", "新訂單") is False

    @pytest.mark.asyncio
    async def test_timeout_is_reported_not_raised(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler)
        assert await client.push("U1", "新訂單") is False
        await client.reply("rt", "still fine")

    @pytest.mark.asyncio
    async def test_disabled_without_token(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        client = _client(handler, token="")
        assert not client.enabled
        await client.reply("rt", "hi")
        assert await client.push("U1", "hi") is False
        assert await client.get_display_name("U1") is None
        assert calls == []


class TestProfile:

    @pytest.mark.asyncio
    async def test_display_name(self):
        def handler(request):
            assert request.url.path.endswith("/profile/U1")
            return httpx.Response(200, json={"displayName": "小明", "userId": "U1"})

        assert await _client(handler).get_display_name("U1") == "小明"

    @pytest.mark.asyncio
    async def test_unknown_profile(self):
        client = _client(lambda request: httpx.Response(404, json={}))
        assert await client.get_display_name("U1") is None
