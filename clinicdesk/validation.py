"""Registration form values and the rules that gate a submission."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Union

from .formatting import is_valid_uz_phone
from .models import GENDERS, NO_DISCOUNT_ID, PAYMENT_METHODS

DateValue = Union[date, str, None]


@dataclass
class RegistrationForm:
    """Values collected by the registration screen."""

    last_name: str = ""
    first_name: str = ""
    middle_name: str = ""
    birth_date: DateValue = None
    gender: str = ""
    phone: str = ""
    address: str = ""
    district_id: str = ""
    pinfl: str = ""
    patient_id: str = ""

    discount_id: str = NO_DISCOUNT_ID
    referral_info: str = ""
    has_referral: bool = False
    referral_doctor_id: str = ""
    insurance: bool = False

    open_new_card: bool = False
    card_type_id: str = ""
    card_number: str = ""
    card_opened_at: DateValue = None
    responsible_doctor_id: str = ""

    doctor_id: str = ""
    selected_service_ids: List[str] = field(default_factory=list)
    service_doctor_ids: Dict[str, str] = field(default_factory=dict)

    payment_method: str = ""
    paid_amount: Optional[int] = None


def parse_date(value: DateValue) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if "T" in text:
        text = text.split("T", 1)[0]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def validate_registration(form: RegistrationForm) -> Dict[str, str]:
    """Return ``{field: message}`` for every rule the form breaks."""
    errors: Dict[str, str] = {}

    required = (
        ("last_name", "Enter the last name"),
        ("first_name", "Enter the first name"),
        ("middle_name", "Enter the middle name"),
        ("birth_date", "Enter the birth date"),
        ("address", "Enter the address"),
    )
    for name, message in required:
        if _blank(getattr(form, name)):
            errors[name] = message

    if "birth_date" not in errors and parse_date(form.birth_date) is None:
        errors["birth_date"] = "Birth date must be YYYY-MM-DD"

    if form.gender not in GENDERS:
        errors["gender"] = "Choose the gender"

    if _blank(form.phone):
        errors["phone"] = "Enter the phone number"
    elif not is_valid_uz_phone(form.phone):
        errors["phone"] = "Phone must be +998XXXXXXXXX"

    if form.has_referral and _blank(form.referral_doctor_id):
        errors["referral_doctor_id"] = "Enter the referring doctor"

    if form.open_new_card:
        if _blank(form.card_type_id):
            errors["card_type_id"] = "Choose the card type"
        if _blank(form.card_number):
            errors["card_number"] = "Enter the card number"
        if _blank(form.card_opened_at):
            errors["card_opened_at"] = "Enter the card opening date"
        elif parse_date(form.card_opened_at) is None:
            errors["card_opened_at"] = "Card opening date must be YYYY-MM-DD"

    if form.payment_method and form.payment_method not in PAYMENT_METHODS:
        errors["payment_method"] = "Payment method must be cash, card or debt"
    if form.paid_amount is not None and form.paid_amount < 0:
        errors["paid_amount"] = "Paid amount cannot be negative"

    return errors
