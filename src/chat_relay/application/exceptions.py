from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class AuthorizationError(AppError):
    """Acting user is not allowed to touch the target chat."""


class ValidationError(AppError):
    pass


class ProtocolError(AppError):
    """Client referenced an unknown group/session or broke the binding rules."""


class UnreachableTargetError(AppError):
    """Target user has no live connection."""


class PersistenceError(AppError):
    """External store failure."""


class DeliveryError(AppError):
    """A single connection could not accept an outbound event."""
