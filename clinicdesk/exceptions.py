"""Errors raised by the clinic desk."""
from __future__ import annotations

from typing import Dict, Mapping


class ClinicError(Exception):
    """Base class for clinic desk errors."""


class ValidationError(ClinicError):
    """Raised when registration form values fail validation."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: Dict[str, str] = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid registration data: {fields}")


class NotFoundError(ClinicError):
    """Raised when a record id is absent from the catalog."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class PaymentError(ClinicError):
    """Raised when a payment cannot be completed."""


class PaymentNotConfirmedError(PaymentError):
    """Raised when completion is requested before the payment is marked paid."""


class PaymentAlreadyCompletedError(PaymentError):
    """Raised when payment completion is replayed for the same draft."""

    def __init__(self, draft_id: str) -> None:
        self.draft_id = draft_id
        super().__init__(f"Payment already completed for draft {draft_id}")


class StorageError(ClinicError):
    """Raised when a snapshot cannot be read from or written to storage."""
