"""
core/exceptions.py
------------------
Domain exceptions raised by the service layer.

Services never build reply text; they raise one of these and the
conversation flows turn them into user-facing messages. Store failures are
left as SQLAlchemyError and handled separately (see conversation/flows.py).
"""


class OrderBotError(Exception):
    """Base class for business-rule violations."""


class NotFoundError(OrderBotError):
    """A world, binding, catalog item or order line does not exist."""


class PermissionDeniedError(OrderBotError):
    """The acting user lacks the role required for the operation."""


class ConflictError(OrderBotError):
    """The operation would violate a uniqueness rule (e.g. second owned world)."""


class ValidationError(OrderBotError):
    """Input is well-formed but breaks a domain rule."""
