"""Exception hierarchy for the graph engine."""

from __future__ import annotations


class IdeaMeshError(Exception):
    """Base class for every error raised by ideamesh."""


class ValidationError(IdeaMeshError):
    """A mutation was rejected before touching local state or the store."""


class NotFoundError(IdeaMeshError):
    """The requested graph does not exist."""


class AccessDeniedError(IdeaMeshError):
    """The graph exists but belongs to another user."""


class PersistenceError(IdeaMeshError):
    """The store rejected a write; the optimistic change was rolled back."""


class AIServiceError(IdeaMeshError):
    """An AI request failed or returned output that could not be parsed."""


class AssistantBusyError(IdeaMeshError):
    """A chat turn is still in flight."""


class StoreError(Exception):
    """Raised by store implementations for any backend failure."""
