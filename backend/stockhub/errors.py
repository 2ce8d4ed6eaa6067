"""
Error kinds raised by the inventory engine.

Services raise these; HTTP routes map them to a status code via
``http_status``. ``MirrorSyncFailed`` is never surfaced to callers of a
successful mutation: it is logged and swallowed after commit.
"""
from __future__ import annotations


class InventoryError(Exception):
    """Base class for inventory engine failures."""

    http_status = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": type(self).__name__}
        if self.context:
            payload["context"] = self.context
        return payload


class NotFound(InventoryError):
    """Product, store or transfer is missing (or soft-deleted)."""

    http_status = 404


class InvalidInput(InventoryError):
    """Negative quantity, zero adjustment, malformed SKU, wrong product kind."""

    http_status = 400


class NoOpAdjustment(InvalidInput):
    """An adjustment that would not change the stored quantity."""


class InsufficientStock(InventoryError):
    http_status = 409


class DuplicateAssignment(InventoryError):
    http_status = 409


class InvalidState(InventoryError):
    """Workflow object is not in a state that allows the transition."""

    http_status = 409


class MirrorSyncFailed(InventoryError):
    http_status = 502


def require_int(value, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer check for quantity-like inputs.

    Rejects bools, floats and non-digit strings instead of coercing them.
    """
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        body = stripped[1:] if stripped[:1] in "+-" else stripped
        if not body.isdigit():
            raise InvalidInput(f"{field} must be an integer")
        result = int(stripped)
    else:
        raise InvalidInput(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise InvalidInput(f"{field} must be >= {minimum}", **{field: result})
    return result
