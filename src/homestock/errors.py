"""Error taxonomy shared by the stores, the reconciliation engine and the API."""

from __future__ import annotations


class HomestockError(Exception):
    """Base class for domain errors surfaced to callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(HomestockError):
    """No resolvable caller identity."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class NoHousehold(HomestockError):
    """The caller does not belong to any household."""

    status_code = 404

    def __init__(self, message: str = "No household found") -> None:
        super().__init__(message)


class NotAuthorized(HomestockError):
    """The caller's household does not own the target record."""

    status_code = 403

    def __init__(self, message: str = "Not authorized for this household") -> None:
        super().__init__(message)


class NotFound(HomestockError, LookupError):
    status_code = 404


class ValidationError(HomestockError, ValueError):
    """Malformed input rejected before any mutation."""

    status_code = 422


class Conflict(HomestockError):
    status_code = 409


class InvalidTransition(Conflict):
    """A shopping list entry was asked to move to a state it cannot reach."""


class StoreError(HomestockError):
    """Persistence failure; the triggering operation left no partial changes."""

    status_code = 503


__all__ = [
    "HomestockError",
    "Unauthenticated",
    "NoHousehold",
    "NotAuthorized",
    "NotFound",
    "ValidationError",
    "Conflict",
    "InvalidTransition",
    "StoreError",
]
