"""
dependencies.py
---------------
FastAPI dependency injection functions.

The conversation handler (with its messaging client and session factory)
is built once in the application lifespan and kept on `app.state`; routes
receive it through `get_conversation_handler`, which tests override.
"""

from fastapi import HTTPException, Request, status

from orderbot.conversation.handler import ConversationHandler
from orderbot.core.logging import get_logger

logger = get_logger(__name__)


def get_conversation_handler(request: Request) -> ConversationHandler:
    """
    Return the application's ConversationHandler.
    Raises 503 if the application has not finished starting up.
    """
    handler = getattr(request.app.state, "conversation_handler", None)
    if handler is None:
        logger.error("Conversation handler not initialised")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready",
        )
    return handler
