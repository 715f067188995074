"""
Typed errors raised by the override registry and the resolver.

Callers map these onto their own transport (HTTP status codes, UI
messages). Nothing inside the core retries.
"""
from typing import Optional


class PricingError(Exception):
    """Base class for all override pricing errors."""


class ValidationError(PricingError):
    """An override record (or resolve input) failed validation."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ConflictError(PricingError):
    """An active override already covers the same client, target and window."""

    def __init__(self, message: str, conflicting_id: Optional[str] = None):
        self.conflicting_id = conflicting_id
        super().__init__(message)


class NotFoundError(PricingError):
    """Unknown override id, client or product."""


class InvalidQuantityError(PricingError):
    """Quantity passed to resolve was not a positive integer."""


class AuditWriteError(PricingError):
    """The audit sink rejected a write."""


class OperationCancelledError(PricingError):
    """The caller cancelled the operation or its deadline passed."""
