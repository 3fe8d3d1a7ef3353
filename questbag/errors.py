"""Domain errors raised by the row store and query layer.

Route handlers translate these into HTTP statuses; nothing below the API layer
knows about HTTP.
"""

from __future__ import annotations


class QuestbagError(Exception):
    """Base class for expected, user-facing failures."""

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class AuthError(QuestbagError):
    """No session, or the session token is unknown/revoked."""


class NotFoundError(QuestbagError):
    pass


class OwnershipError(QuestbagError):
    """The entity exists but belongs to another user."""


class ConflictError(QuestbagError):
    pass


class LimitExceededError(QuestbagError):
    pass


class InvalidInputError(QuestbagError):
    pass
