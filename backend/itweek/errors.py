"""Domain errors raised by the services and mapped to HTTP statuses by the API."""
from __future__ import annotations


class ITWeekError(Exception):
    """Base class for service-level failures."""


class ValidationError(ITWeekError, ValueError):
    """Input rejected before any mutation."""


class NotFoundError(ITWeekError, LookupError):
    """Referenced row does not exist."""


class ConflictError(ITWeekError):
    """Mutation would violate a uniqueness or state invariant."""


class EditLimitReached(ConflictError):
    """Self-service profile edit cap exhausted."""


class InvalidTransition(ConflictError):
    """Reveal state machine rejected the requested transition."""
