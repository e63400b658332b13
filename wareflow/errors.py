# Overview: Typed failures raised by the service layer; routes map them to status codes.

from __future__ import annotations


class ServiceError(Exception):
    """Base for every expected, typed failure of a service operation."""

    code = "SERVICE_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFound(ServiceError, LookupError):
    """Entity absent or outside the actor's scope."""

    code = "NOT_FOUND"
    http_status = 404


class InvalidState(ServiceError):
    """Operation not legal in the entity's current lifecycle state."""

    code = "INVALID_STATE"
    http_status = 409


class InsufficientStock(ServiceError):
    """Transfer source lacks the requested quantity."""

    code = "INSUFFICIENT_STOCK"
    http_status = 409


class AccessDenied(ServiceError, PermissionError):
    """Role lacks the capability."""

    code = "ACCESS_DENIED"
    http_status = 403


class Conflict(ServiceError):
    """409-level uniqueness violation (order/return number, username, code)."""

    code = "CONFLICT"
    http_status = 409


class StoreContention(ServiceError):
    """Store stayed locked or kept changing underneath; retrying later may help."""

    code = "STORE_CONTENTION"
    http_status = 503
