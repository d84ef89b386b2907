"""Payment completion and per-doctor income attribution."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Tuple

from .exceptions import PaymentAlreadyCompletedError, PaymentError, PaymentNotConfirmedError
from .models import PAYMENT_METHODS, IncomeEntry, RegistrationDraft, Service, index_by_id
from .pricing import round_half_up
from .repository import ClinicRepository

logger = logging.getLogger(__name__)

FALLBACK_DOCTOR_ID = "doc_1001"
DEFAULT_DESCRIPTION = "Registration"


@dataclass(frozen=True)
class PaymentOutcome:
    draft: RegistrationDraft
    entries: Tuple[IncomeEntry, ...]

    @property
    def attributed_total(self) -> int:
        return sum(entry.amount for entry in self.entries)


def describe_services(draft: RegistrationDraft, services: Mapping[str, Service]) -> str:
    names = [services[line.service_id].name for line in draft.services if line.service_id in services]
    return ", ".join(names) or DEFAULT_DESCRIPTION


def doctor_subtotals(draft: RegistrationDraft, default_doctor_id: str) -> Dict[str, int]:
    """Sum sale prices per doctor, in first-seen order."""
    totals: Dict[str, int] = OrderedDict()
    for line in draft.services:
        key = line.doctor_id or default_doctor_id
        totals[key] = totals.get(key, 0) + line.price
    return totals


def allocate_income(
    draft: RegistrationDraft,
    *,
    default_doctor_id: str,
    payment_method: str,
    on_date: date,
    description: str = DEFAULT_DESCRIPTION,
    reconcile: bool = False,
) -> List[IncomeEntry]:
    """Split ``draft.total`` across doctors by their share of the subtotal.

    Each share is rounded on its own, so the entries may miss the total by a
    few units. With ``reconcile`` the difference is added to the largest
    share. Groups whose share is not positive produce no entry.
    """
    subtotal = Decimal(draft.subtotal or 1)
    total = Decimal(draft.total)
    shares = [
        (doctor_id, round_half_up(Decimal(amount) / subtotal * total))
        for doctor_id, amount in doctor_subtotals(draft, default_doctor_id).items()
    ]
    shares = [(doctor_id, share) for doctor_id, share in shares if share > 0]

    if reconcile and shares:
        drift = draft.total - sum(share for _, share in shares)
        if drift:
            largest = max(range(len(shares)), key=lambda idx: shares[idx][1])
            doctor_id, share = shares[largest]
            shares[largest] = (doctor_id, share + drift)

    return [
        IncomeEntry(
            date=on_date,
            amount=share,
            description=description,
            payment_method=payment_method,
            patient_id=draft.patient_id or None,
            doctor_id=doctor_id,
            draft_id=draft.id or None,
        )
        for doctor_id, share in shares
        if share > 0
    ]


class PaymentDesk:
    """Cash desk step that closes a registration draft."""

    def __init__(
        self,
        repository: ClinicRepository,
        *,
        default_doctor_id: Optional[str] = None,
        reconcile_rounding: bool = False,
    ) -> None:
        self.repository = repository
        self.default_doctor_id = default_doctor_id
        self.reconcile_rounding = reconcile_rounding

    def resolve_default_doctor_id(self) -> str:
        if self.default_doctor_id:
            return self.default_doctor_id
        doctors = self.repository.get_all_doctors()
        return doctors[0].id if doctors else FALLBACK_DOCTOR_ID

    def complete_payment(
        self,
        draft_id: str,
        *,
        payment_method: Optional[str] = None,
        paid: bool = False,
        paid_amount: Optional[int] = None,
        on_date: Optional[date] = None,
    ) -> PaymentOutcome:
        """Mark the draft paid and book one income entry per doctor.

        Method and amount default to the ones captured on the draft at
        registration, then to cash and the draft total. Completion needs
        ``paid`` unless the method is ``debt``. A draft can be completed
        once; replays raise :class:`PaymentAlreadyCompletedError` and book
        nothing.
        """
        draft = self.repository.get_registration_draft(draft_id)
        payment_method = payment_method or draft.payment_method or "cash"
        if payment_method not in PAYMENT_METHODS:
            raise PaymentError(f"Unknown payment method: {payment_method}")
        if not paid and payment_method != "debt":
            raise PaymentNotConfirmedError("Mark the payment as paid before completing it")
        if draft.is_paid:
            raise PaymentAlreadyCompletedError(draft_id)

        services = index_by_id(self.repository.get_all_services())
        entries = allocate_income(
            draft,
            default_doctor_id=self.resolve_default_doctor_id(),
            payment_method=payment_method,
            on_date=on_date or date.today(),
            description=describe_services(draft, services),
            reconcile=self.reconcile_rounding,
        )

        if paid_amount is None:
            paid_amount = draft.paid_amount
        if paid_amount is None:
            paid_amount = 0 if payment_method == "debt" else draft.total
        updated = self.repository.record_payment(
            draft_id,
            payment_method=payment_method,
            paid_amount=paid_amount,
        )
        if entries:
            self.repository.add_income_entries(entries)
        logger.info(
            "Payment completed for draft %s: %s %s across %d doctor(s)",
            draft_id,
            payment_method,
            sum(entry.amount for entry in entries),
            len(entries),
        )
        return PaymentOutcome(draft=updated, entries=tuple(entries))
