"""Turn a validated registration form into a persisted draft."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .exceptions import ValidationError
from .formatting import normalize_uz_phone
from .models import Discount, Patient, PatientCard, RegistrationDraft, ServiceLine
from .pricing import PriceQuote, quote
from .repository import ClinicRepository
from .validation import RegistrationForm, parse_date, validate_registration


@dataclass(frozen=True)
class RegistrationResult:
    patient: Patient
    draft: RegistrationDraft
    quote: PriceQuote
    discount: Discount
    card: Optional[PatientCard] = None


def _or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text or None


class RegistrationBuilder:
    """Registration pipeline: validate, resolve the patient, price, persist."""

    def __init__(self, repository: ClinicRepository) -> None:
        self.repository = repository

    def preview(self, form: RegistrationForm) -> PriceQuote:
        """Price the current selection the same way :meth:`submit` will."""
        discount = self.repository.get_discount(form.discount_id)
        return quote(form.selected_service_ids, self.repository.get_services(), discount.percent)

    def submit(self, form: RegistrationForm) -> RegistrationResult:
        errors = validate_registration(form)
        if errors:
            raise ValidationError(errors)

        patient = self.repository.create_or_update_patient(self._patient_values(form))

        discount = self.repository.get_discount(form.discount_id)
        priced = quote(form.selected_service_ids, self.repository.get_services(), discount.percent)
        lines = tuple(
            ServiceLine(
                service_id=service.id,
                doctor_id=form.service_doctor_ids.get(service.id) or form.doctor_id or "",
                price=service.price,
            )
            for service in priced.services
        )

        card = None
        card_opened_at = parse_date(form.card_opened_at) if form.open_new_card else None
        if form.open_new_card:
            card = self.repository.create_patient_card(
                patient_id=patient.id,
                card_type_id=form.card_type_id,
                card_number=form.card_number.strip(),
                opened_at=card_opened_at,
                insurance=form.insurance,
                responsible_doctor_id=_or_none(form.responsible_doctor_id),
            )

        draft = self.repository.create_registration_draft(
            RegistrationDraft(
                id="",
                patient_id=patient.id,
                created_at=datetime.now(timezone.utc),
                services=lines,
                subtotal=priced.subtotal,
                discount_amount=priced.discount_amount,
                total=priced.total,
                discount_id=discount.id,
                open_new_card=form.open_new_card,
                card_type_id=_or_none(form.card_type_id) if form.open_new_card else None,
                card_number=_or_none(form.card_number) if form.open_new_card else None,
                card_opened_at=card_opened_at,
                responsible_doctor_id=_or_none(form.responsible_doctor_id),
                referral_info=_or_none(form.referral_info),
                referral_doctor_id=_or_none(form.referral_doctor_id) if form.has_referral else None,
                insurance=form.insurance,
                payment_method=_or_none(form.payment_method),
                paid_amount=form.paid_amount,
            )
        )
        return RegistrationResult(patient=patient, draft=draft, quote=priced, discount=discount, card=card)

    @staticmethod
    def _patient_values(form: RegistrationForm) -> Dict[str, Any]:
        values: Dict[str, Any] = {
            "last_name": form.last_name.strip(),
            "first_name": form.first_name.strip(),
            "middle_name": form.middle_name.strip(),
            "gender": form.gender,
            "birth_date": parse_date(form.birth_date),
            "phone": normalize_uz_phone(form.phone),
            "address": form.address.strip(),
            "district_id": _or_none(form.district_id),
            "pinfl": _or_none(form.pinfl),
        }
        if _or_none(form.patient_id):
            values["id"] = form.patient_id.strip()
        return values
