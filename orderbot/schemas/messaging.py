"""
schemas/messaging.py
--------------------
Inbound webhook events and outbound message payloads for the messaging
platform (LINE Messaging API shapes).

Only `follow` and `message`/`text` events are acted on; every other event
still validates (extra fields ignored) so a batch never fails as a whole.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ── Outbound ──────────────────────────────────────────────────────────────────

class TextMessage(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["image"] = "image"
    original_content_url: str = Field(alias="originalContentUrl")
    preview_image_url: str = Field(alias="previewImageUrl")

    @classmethod
    def from_url(cls, url: str) -> "ImageMessage":
        return cls(original_content_url=url, preview_image_url=url)


OutboundMessage = Union[TextMessage, ImageMessage]
ReplyPayload = Union[str, List[OutboundMessage]]


def to_message_objects(payload: ReplyPayload) -> List[dict]:
    """Normalise a reply payload into the platform's `messages` array."""
    if isinstance(payload, str):
        payload = [TextMessage(text=payload)]
    return [m.model_dump(by_alias=True) for m in payload]


# ── Inbound ───────────────────────────────────────────────────────────────────

class EventSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "user"
    user_id: Optional[str] = Field(default=None, alias="userId")


class EventMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    id: Optional[str] = None
    text: Optional[str] = None


class LineEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    source: EventSource = Field(default_factory=EventSource)
    reply_token: Optional[str] = Field(default=None, alias="replyToken")
    message: Optional[EventMessage] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.source.user_id

    @property
    def is_follow(self) -> bool:
        return self.type == "follow"

    @property
    def text(self) -> Optional[str]:
        """Message text for `message`/`text` events, else None."""
        if self.type == "message" and self.message is not None and self.message.type == "text":
            return self.message.text
        return None


class WebhookBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    destination: Optional[str] = None
    events: List[LineEvent] = []
