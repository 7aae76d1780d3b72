"""
services/messaging_service.py
-----------------------------
Outbound calls to the messaging platform (LINE Messaging API).

Design decisions:
  - One shared httpx.AsyncClient with a bounded timeout; closed on shutdown.
  - Transport failures never raise: they are logged and reported as a
    falsy result (push → False, display name → None, reply → nothing).
  - Without an access token every call is a logged no-op, so the bot runs
    locally without platform credentials.
"""

from typing import Optional, Protocol

import httpx

from orderbot.core.config import settings
from orderbot.core.logging import get_logger
from orderbot.schemas.messaging import ReplyPayload, to_message_objects

logger = get_logger(__name__)


class Messenger(Protocol):

    async def reply(self, reply_token: str, messages: ReplyPayload) -> None:
        ...

    async def push(self, user_id: str, messages: ReplyPayload) -> bool:
        ...

    async def get_display_name(self, user_id: str) -> Optional[str]:
        ...


class LineMessagingClient:

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.access_token = settings.LINE_CHANNEL_ACCESS_TOKEN if access_token is None else access_token
        self.base_url = (base_url or settings.LINE_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.LINE_HTTP_TIMEOUT_SECONDS
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.access_token)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: dict, operation: str) -> Optional[httpx.Response]:
        try:
            response = await self._http().post(path, json=payload)
        except httpx.TimeoutException:
            logger.error("Messaging API timed out", operation=operation)
            return None
        except httpx.HTTPError as exc:
            logger.error("Messaging API request failed", operation=operation, error=str(exc))
            return None
        if response.is_error:
            logger.error(
                "Messaging API returned an error",
                operation=operation,
                status=response.status_code,
                body=response.text[:500],
            )
        return response

    async def reply(self, reply_token: str, messages: ReplyPayload) -> None:
        if not self.enabled:
            logger.warning("LINE_CHANNEL_ACCESS_TOKEN not set, reply not sent")
            return
        if not reply_token:
            return
        await self._post(
            "/message/reply",
            {"replyToken": reply_token, "messages": to_message_objects(messages)},
            operation="reply",
        )

    async def push(self, user_id: str, messages: ReplyPayload) -> bool:
        if not self.enabled:
            logger.warning("LINE_CHANNEL_ACCESS_TOKEN not set, push not sent")
            return False
        if not user_id:
            logger.warning("Push without target user id")
            return False
        response = await self._post(
            "/message/push",
            {"to": user_id, "messages": to_message_objects(messages)},
            operation="push",
        )
        if response is None or response.is_error:
            if response is not None and response.status_code == 400:
                # Typically the user has not added the bot as a friend
                logger.warning("Push rejected by platform", target=user_id)
            return False
        return True

    async def get_display_name(self, user_id: str) -> Optional[str]:
        if not self.enabled or not user_id:
            return None
        try:
            response = await self._http().get(f"/profile/{user_id}")
        except httpx.HTTPError as exc:
            logger.warning("Profile lookup failed", target=user_id, error=str(exc))
            return None
        if response.is_error:
            return None
        try:
            return response.json().get("displayName") or None
        except ValueError:
            return None

