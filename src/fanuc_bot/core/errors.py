"""Error taxonomy shared by the wizard engine, live sessions and collaborators."""

from __future__ import annotations

from typing import Any


class FanucBotError(Exception):
    """Base class for errors whose message can be shown to the chat user."""


class ValidationError(FanucBotError):
    """User input failed a wizard step's rule. The step is re-prompted."""


class NotFoundError(FanucBotError):
    """A referenced target, key, service or machine no longer exists."""

    def __init__(self, entity: str, entity_id: Any, detail: str = ""):
        self.entity = entity
        self.entity_id = entity_id
        message = f"{entity} {entity_id} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CollaboratorUnavailable(FanucBotError):
    """Storage, Kafka or the remote Fanuc API failed."""

    def __init__(self, operation: str, detail: str, **context: Any):
        self.operation = operation
        self.detail = detail
        self.context = context
        where = ", ".join(f"{k}={v}" for k, v in context.items())
        suffix = f" ({where})" if where else ""
        super().__init__(f"{operation} failed{suffix}: {detail}")


class StorageUnavailable(CollaboratorUnavailable):
    """The local database rejected or failed an operation."""


class TargetGone(FanucBotError):
    """The chat or message a view was rendered into no longer exists."""
