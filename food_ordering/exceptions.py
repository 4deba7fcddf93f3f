"""Domain exceptions raised by the ordering services.

Each error carries the HTTP status the API layer renders it with.
"""

from typing import Any, Optional


class OrderingError(Exception):
    """Base exception for ordering errors."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None) -> None:
        self.message = message
        self.errors = errors
        super().__init__(message)


class ValidationFailed(OrderingError):
    """Malformed or missing input."""

    status_code = 400


class AuthenticationFailed(OrderingError):
    """Bearer credential missing, malformed or expired."""

    status_code = 401


class Forbidden(OrderingError):
    """Authenticated but not entitled to the resource."""

    status_code = 403


class NotFound(OrderingError):
    """Unknown id or number, or hidden from the requester."""

    status_code = 404


class Conflict(OrderingError):
    """Order number already taken."""

    status_code = 409

    def __init__(self, message: str, order_number: Optional[str] = None) -> None:
        super().__init__(message)
        self.order_number = order_number


class Unexpected(OrderingError):
    """Persistence or provider failure."""

    status_code = 500


def format_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic error dicts into ``{field, message}`` pairs."""
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        formatted.append({
            "field": ".".join(loc),
            "message": error.get("msg", "Invalid value"),
        })
    return formatted
