"""
Domain errors raised by the variant and pricing core.

Routes in main.py translate these into HTTP responses.
"""

from typing import List, Optional


class StoreError(Exception):
    """Base class for every error the core raises."""

    def __init__(self, message: str, sku: Optional[str] = None, group: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.sku = sku
        self.group = group

    def to_dict(self) -> dict:
        out = {"error": self.message}
        if self.sku is not None:
            out["sku"] = self.sku
        if self.group is not None:
            out["group"] = self.group
        return out


class ValidationError(StoreError):
    """Malformed option group or line request."""


class NotFoundError(StoreError):
    """SKU does not resolve to a product or variant."""


class ConsistencyError(NotFoundError):
    # line points at a variant its product no longer has
    pass


class ConflictError(StoreError):
    """A versioned document changed underneath a write."""


class BatchValidationError(StoreError):
    """Collects per-unit failures of an all-or-nothing operation."""

    def __init__(self, message: str, errors: List[StoreError]):
        super().__init__(message)
        self.errors = errors

    @property
    def all_not_found(self) -> bool:
        return bool(self.errors) and all(isinstance(e, NotFoundError) for e in self.errors)

    def to_dict(self) -> dict:
        return {"error": self.message, "errors": [e.to_dict() for e in self.errors]}
