"""
api/routes/webhook.py
---------------------
Messaging-platform webhook endpoint.

POST /webhook   Verify the signature, parse the event batch, dispatch
                 each event to the conversation handler.

Responses:
  401: signature missing or wrong
  400: body is not valid JSON / not a webhook payload
  200: events dispatched (including events that were ignored)
  500: dispatch raised unexpectedly (logged)
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from orderbot.conversation.handler import ConversationHandler
from orderbot.core.logging import get_logger
from orderbot.core.security import verify_signature
from orderbot.dependencies import get_conversation_handler
from orderbot.schemas.messaging import WebhookBody

logger = get_logger(__name__)

router = APIRouter(tags=["Webhook"])


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    summary="Receive messaging-platform events",
)
async def receive_events(
    request: Request,
    handler: Annotated[ConversationHandler, Depends(get_conversation_handler)],
    x_line_signature: Annotated[Optional[str], Header()] = None,
) -> dict:
    body = await request.body()
    if not verify_signature(body, x_line_signature):
        logger.warning("Webhook signature rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        )

    try:
        payload = WebhookBody.model_validate_json(body)
    except PydanticValidationError as exc:
        logger.warning("Malformed webhook body", errors=exc.error_count())
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook body",
        )

    try:
        await handler.handle_events(payload.events)
    except Exception:
        logger.error("Event dispatch failed", events=len(payload.events), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Event dispatch failed",
        )

    return {"status": "ok", "events": len(payload.events)}
