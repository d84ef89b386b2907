"""Clinic records and their snapshot (JSON) representation."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

PAYMENT_METHODS = ("cash", "card", "debt")
GENDERS = ("male", "female")
NO_DISCOUNT_ID = "disc_none"


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_opt_str(value: Any) -> Optional[str]:
    text = _to_str(value)
    return text or None


def _to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(Decimal(str(value).strip()).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (TypeError, ValueError, ArithmeticError):
        return 0


def _to_opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return _to_int(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _to_datetime(value: Any, default: Optional[datetime] = None) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    return default or datetime(1970, 1, 1, tzinfo=timezone.utc)


def _to_date(value: Any, default: Optional[date] = None) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        # Ledger dates may carry a time part; only the day is significant.
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    return default or date(1970, 1, 1)


def _to_opt_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    return _to_date(value)


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def _iso_datetime(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    return value.isoformat()


@dataclass(frozen=True)
class Meta:
    clinic_name: str = ""
    currency: str = "UZS"
    timezone: str = "Asia/Tashkent"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Meta":
        return cls(
            clinic_name=_to_str(data.get("clinicName")),
            currency=_to_str(data.get("currency")) or "UZS",
            timezone=_to_str(data.get("timezone")) or "Asia/Tashkent",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"clinicName": self.clinic_name, "currency": self.currency, "timezone": self.timezone}


@dataclass(frozen=True)
class NamedEntry:
    id: str
    name: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        return cls(id=_to_str(data.get("id")), name=_to_str(data.get("name")))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


class District(NamedEntry):
    pass


class CardType(NamedEntry):
    pass


class Specialty(NamedEntry):
    pass


class ServiceCategory(NamedEntry):
    pass


@dataclass(frozen=True)
class Discount:
    id: str
    label: str
    percent: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Discount":
        percent = min(max(_to_int(data.get("percent")), 0), 100)
        return cls(id=_to_str(data.get("id")), label=_to_str(data.get("label")), percent=percent)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "percent": self.percent}


NO_DISCOUNT = Discount(id=NO_DISCOUNT_ID, label="No discount", percent=0)


@dataclass(frozen=True)
class Doctor:
    id: str
    full_name: str
    specialty_id: str = ""
    active: bool = True
    service_ids: Tuple[str, ...] = ()
    salary_percent: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Doctor":
        return cls(
            id=_to_str(data.get("id")),
            full_name=_to_str(data.get("fullName")),
            specialty_id=_to_str(data.get("specialtyId")),
            active=_to_bool(data.get("active", True)),
            service_ids=tuple(_to_str(sid) for sid in data.get("serviceIds") or ()),
            salary_percent=_to_opt_int(data.get("salaryPercent")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "fullName": self.full_name,
                "specialtyId": self.specialty_id,
                "active": self.active,
                "serviceIds": list(self.service_ids),
                "salaryPercent": self.salary_percent,
            }
        )


@dataclass(frozen=True)
class Service:
    id: str
    category_id: str
    specialty_id: str
    name: str
    price: int
    active: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Service":
        return cls(
            id=_to_str(data.get("id")),
            category_id=_to_str(data.get("categoryId")),
            specialty_id=_to_str(data.get("specialtyId")),
            name=_to_str(data.get("name")),
            price=_to_int(data.get("price")),
            active=_to_bool(data.get("active", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "categoryId": self.category_id,
            "specialtyId": self.specialty_id,
            "name": self.name,
            "price": self.price,
            "active": self.active,
        }


@dataclass(frozen=True)
class Patient:
    id: str
    last_name: str
    first_name: str
    middle_name: str
    gender: str
    birth_date: Optional[date]
    phone: str
    address: str
    district_id: Optional[str] = None
    pinfl: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.last_name, self.first_name, self.middle_name) if part)

    @property
    def short_name(self) -> str:
        return " ".join(part for part in (self.last_name, self.first_name) if part)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Patient":
        return cls(
            id=_to_str(data.get("id")),
            last_name=_to_str(data.get("lastName")),
            first_name=_to_str(data.get("firstName")),
            middle_name=_to_str(data.get("middleName")),
            gender=_to_str(data.get("gender")),
            birth_date=_to_opt_date(data.get("birthDate")),
            phone=_to_str(data.get("phone")),
            address=_to_str(data.get("address")),
            district_id=_to_opt_str(data.get("districtId")),
            pinfl=_to_opt_str(data.get("pinfl")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "lastName": self.last_name,
                "firstName": self.first_name,
                "middleName": self.middle_name,
                "gender": self.gender,
                "birthDate": self.birth_date.isoformat() if self.birth_date else "",
                "phone": self.phone,
                "districtId": self.district_id,
                "address": self.address,
                "pinfl": self.pinfl,
            }
        )


@dataclass(frozen=True)
class PatientCard:
    id: str
    patient_id: str
    card_type_id: str
    card_number: str
    opened_at: Optional[date]
    insurance: bool = False
    responsible_doctor_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PatientCard":
        return cls(
            id=_to_str(data.get("id")),
            patient_id=_to_str(data.get("patientId")),
            card_type_id=_to_str(data.get("cardTypeId")),
            card_number=_to_str(data.get("cardNumber")),
            opened_at=_to_opt_date(data.get("openedAt")),
            insurance=_to_bool(data.get("insurance")),
            responsible_doctor_id=_to_opt_str(data.get("responsibleDoctorId")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "patientId": self.patient_id,
                "cardTypeId": self.card_type_id,
                "cardNumber": self.card_number,
                "openedAt": self.opened_at.isoformat() if self.opened_at else "",
                "insurance": self.insurance,
                "responsibleDoctorId": self.responsible_doctor_id,
            }
        )


@dataclass(frozen=True)
class ServiceLine:
    service_id: str
    doctor_id: str
    price: int

    @property
    def price_at_sale(self) -> int:
        return self.price

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServiceLine":
        return cls(
            service_id=_to_str(data.get("serviceId")),
            doctor_id=_to_str(data.get("doctorId")),
            price=_to_int(data.get("price")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"serviceId": self.service_id, "doctorId": self.doctor_id, "price": self.price}


@dataclass(frozen=True)
class RegistrationDraft:
    id: str
    patient_id: str
    created_at: datetime
    services: Tuple[ServiceLine, ...] = ()
    subtotal: int = 0
    discount_amount: int = 0
    total: int = 0
    discount_id: Optional[str] = None
    open_new_card: bool = False
    card_type_id: Optional[str] = None
    card_number: Optional[str] = None
    card_opened_at: Optional[date] = None
    responsible_doctor_id: Optional[str] = None
    referral_info: Optional[str] = None
    referral_doctor_id: Optional[str] = None
    insurance: bool = False
    payment_method: Optional[str] = None
    paid_amount: Optional[int] = None
    paid_at: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RegistrationDraft":
        paid_at = data.get("paidAt")
        return cls(
            id=_to_str(data.get("id")),
            patient_id=_to_str(data.get("patientId")),
            created_at=_to_datetime(data.get("createdAt")),
            services=tuple(ServiceLine.from_dict(line) for line in data.get("services") or ()),
            subtotal=_to_int(data.get("subtotal")),
            discount_amount=_to_int(data.get("discountAmount")),
            total=_to_int(data.get("total")),
            discount_id=_to_opt_str(data.get("discountId")),
            open_new_card=_to_bool(data.get("openNewCard")),
            card_type_id=_to_opt_str(data.get("cardTypeId")),
            card_number=_to_opt_str(data.get("cardNumber")),
            card_opened_at=_to_opt_date(data.get("cardOpenedAt")),
            responsible_doctor_id=_to_opt_str(data.get("responsibleDoctorId")),
            referral_info=_to_opt_str(data.get("referralInfo")),
            referral_doctor_id=_to_opt_str(data.get("referralDoctorId")),
            insurance=_to_bool(data.get("insurance")),
            payment_method=_to_opt_str(data.get("paymentMethod")),
            paid_amount=_to_opt_int(data.get("paidAmount")),
            paid_at=_to_datetime(paid_at) if paid_at else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "patientId": self.patient_id,
                "discountId": self.discount_id,
                "openNewCard": self.open_new_card,
                "cardTypeId": self.card_type_id,
                "cardNumber": self.card_number,
                "cardOpenedAt": self.card_opened_at.isoformat() if self.card_opened_at else None,
                "responsibleDoctorId": self.responsible_doctor_id,
                "referralInfo": self.referral_info,
                "referralDoctorId": self.referral_doctor_id,
                "insurance": self.insurance,
                "services": [line.to_dict() for line in self.services],
                "subtotal": self.subtotal,
                "discountAmount": self.discount_amount,
                "total": self.total,
                "paymentMethod": self.payment_method,
                "paidAmount": self.paid_amount,
                "createdAt": _iso_datetime(self.created_at),
                "paidAt": _iso_datetime(self.paid_at) if self.paid_at else None,
            }
        )


@dataclass(frozen=True)
class IncomeEntry:
    date: date
    amount: int
    description: str
    payment_method: str = "cash"
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    draft_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IncomeEntry":
        return cls(
            date=_to_date(data.get("date")),
            amount=_to_int(data.get("amount")),
            description=_to_str(data.get("description")),
            payment_method=_to_str(data.get("paymentMethod")) or "cash",
            patient_id=_to_opt_str(data.get("patientId")),
            doctor_id=_to_opt_str(data.get("doctorId")),
            draft_id=_to_opt_str(data.get("draftId")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "date": self.date.isoformat(),
                "amount": self.amount,
                "description": self.description,
                "paymentMethod": self.payment_method,
                "patientId": self.patient_id,
                "doctorId": self.doctor_id,
                "draftId": self.draft_id,
            }
        )


@dataclass(frozen=True)
class Dictionaries:
    meta: Meta
    districts: Tuple[District, ...]
    discounts: Tuple[Discount, ...]
    card_types: Tuple[CardType, ...]
    specialties: Tuple[Specialty, ...]
    service_categories: Tuple[ServiceCategory, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": self.meta.to_dict(),
            "districts": [item.to_dict() for item in self.districts],
            "discounts": [item.to_dict() for item in self.discounts],
            "cardTypes": [item.to_dict() for item in self.card_types],
            "specialties": [item.to_dict() for item in self.specialties],
            "serviceCategories": [item.to_dict() for item in self.service_categories],
        }


def _load_list(data: Mapping[str, Any], key: str, loader) -> List[Any]:
    return [loader(item) for item in data.get(key) or () if isinstance(item, Mapping)]


@dataclass
class ClinicSnapshot:
    """Whole mutable store state, serialised as a single JSON object."""

    meta: Meta = field(default_factory=Meta)
    districts: List[District] = field(default_factory=list)
    discounts: List[Discount] = field(default_factory=list)
    card_types: List[CardType] = field(default_factory=list)
    specialties: List[Specialty] = field(default_factory=list)
    service_categories: List[ServiceCategory] = field(default_factory=list)
    doctors: List[Doctor] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    patients: List[Patient] = field(default_factory=list)
    patient_cards: List[PatientCard] = field(default_factory=list)
    registration_drafts: List[RegistrationDraft] = field(default_factory=list)
    income: List[IncomeEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClinicSnapshot":
        snapshot = cls(
            meta=Meta.from_dict(data.get("meta") or {}),
            districts=_load_list(data, "districts", District.from_dict),
            discounts=_load_list(data, "discounts", Discount.from_dict),
            card_types=_load_list(data, "cardTypes", CardType.from_dict),
            specialties=_load_list(data, "specialties", Specialty.from_dict),
            service_categories=_load_list(data, "serviceCategories", ServiceCategory.from_dict),
            doctors=_load_list(data, "doctors", Doctor.from_dict),
            services=_load_list(data, "services", Service.from_dict),
            patients=_load_list(data, "patients", Patient.from_dict),
            patient_cards=_load_list(data, "patientCards", PatientCard.from_dict),
            registration_drafts=_load_list(data, "registrationDrafts", RegistrationDraft.from_dict),
            income=_load_list(data, "income", IncomeEntry.from_dict),
        )
        if not any(discount.id == NO_DISCOUNT_ID for discount in snapshot.discounts):
            snapshot.discounts.insert(0, NO_DISCOUNT)
        return snapshot

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": self.meta.to_dict(),
            "districts": [item.to_dict() for item in self.districts],
            "discounts": [item.to_dict() for item in self.discounts],
            "cardTypes": [item.to_dict() for item in self.card_types],
            "specialties": [item.to_dict() for item in self.specialties],
            "serviceCategories": [item.to_dict() for item in self.service_categories],
            "doctors": [item.to_dict() for item in self.doctors],
            "services": [item.to_dict() for item in self.services],
            "patients": [item.to_dict() for item in self.patients],
            "patientCards": [item.to_dict() for item in self.patient_cards],
            "registrationDrafts": [item.to_dict() for item in self.registration_drafts],
            "income": [item.to_dict() for item in self.income],
        }

    def dictionaries(self) -> Dictionaries:
        return Dictionaries(
            meta=self.meta,
            districts=tuple(self.districts),
            discounts=tuple(self.discounts),
            card_types=tuple(self.card_types),
            specialties=tuple(self.specialties),
            service_categories=tuple(self.service_categories),
        )


def index_by_id(records: Iterable[Any]) -> Dict[str, Any]:
    return {record.id: record for record in records}
