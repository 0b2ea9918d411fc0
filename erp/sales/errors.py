"""
erp/sales/errors.py
-------------------
Failure taxonomy for the sale flow.

ValidationError            missing warehouse / customer / payment method, empty cart
StockError                 quantity exceeds available stock
DuplicateCombinationError  variation authoring would duplicate an attribute combination or SKU
PersistenceError           the persistence collaborator failed

Only the submission coordinator catches these; it turns each into a
failed SaleResult so nothing escapes to the caller.
"""
import json
from dataclasses import dataclass
from typing import Optional


class SaleError(Exception):
    """Base class. `str(exc)` is the user-facing message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SaleError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StockError(SaleError):
    def __init__(self, message: str, item_name: str = '', available: int = 0):
        super().__init__(message)
        self.item_name = item_name
        self.available = available


class DuplicateCombinationError(SaleError):
    pass


@dataclass(frozen=True)
class ErrorDetail:
    """
    The structured fields a persistence error may carry.
    `fallback` holds a serialised form of the error for when none is set.
    """
    message:  Optional[str] = None
    details:  Optional[str] = None
    hint:     Optional[str] = None
    fallback: str = 'Unknown error occurred'

    @classmethod
    def from_exception(cls, exc: BaseException) -> 'ErrorDetail':
        if isinstance(exc, PersistenceError):
            return exc.detail

        fields = {}
        for name in ('message', 'details', 'hint'):
            value = getattr(exc, name, None)
            if isinstance(value, str) and value.strip():
                fields[name] = value
        return cls(fallback=_serialise(exc), **fields)

    def user_message(self) -> str:
        """First non-empty of message, details, hint; else the serialised error."""
        return self.message or self.details or self.hint or self.fallback


class PersistenceError(SaleError):
    def __init__(self, detail: ErrorDetail):
        super().__init__(detail.user_message())
        self.detail = detail


def _serialise(exc: BaseException) -> str:
    if str(exc):
        return str(exc)
    attrs = {k: v for k, v in getattr(exc, '__dict__', {}).items() if not k.startswith('_')}
    if attrs:
        return json.dumps(attrs, default=str, sort_keys=True)
    return type(exc).__name__
