"""Catalog store for clinic reference data, patients, drafts and income."""
from __future__ import annotations

import json
import logging
import random
import string
import time
from dataclasses import fields, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .exceptions import NotFoundError, PaymentAlreadyCompletedError, StorageError
from .formatting import digits_only
from .models import (
    NO_DISCOUNT,
    NO_DISCOUNT_ID,
    ClinicSnapshot,
    Dictionaries,
    Discount,
    Doctor,
    IncomeEntry,
    Patient,
    PatientCard,
    RegistrationDraft,
    Service,
    index_by_id,
)
from .seed import SeedLoader
from .storage import MemoryStorage, SnapshotStorage

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "clinic_db_mock"
_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now() -> datetime:
    # Millisecond precision so timestamps survive a snapshot round trip.
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


class ClinicRepository:
    """Single owner of the clinic store state.

    The whole store is kept in memory and written through ``storage`` as one
    JSON document after every mutation. Storage failures never reach the
    caller: reads fall back to the bundled seed and failed writes are logged,
    leaving memory ahead of storage until the next successful write.
    """

    def __init__(
        self,
        storage: Optional[SnapshotStorage] = None,
        *,
        snapshot_key: str = SNAPSHOT_KEY,
        seed: Optional[SeedLoader] = None,
        latency: float = 0.0,
    ) -> None:
        self.storage = storage if storage is not None else MemoryStorage()
        self.snapshot_key = snapshot_key
        self.seed = seed or SeedLoader()
        self.latency = max(float(latency or 0.0), 0.0)
        self._db: Optional[ClinicSnapshot] = None

    # ------------------------------------------------------------------
    # loading and persistence

    def load(self) -> None:
        if self._db is not None:
            return
        snapshot = self._read_persisted()
        if snapshot is None:
            snapshot = ClinicSnapshot.from_dict(self.seed.load())
        self._db = snapshot

    def _read_persisted(self) -> Optional[ClinicSnapshot]:
        try:
            payload = self.storage.read(self.snapshot_key)
        except StorageError as exc:
            logger.warning("Unable to read persisted snapshot %r: %s", self.snapshot_key, exc)
            return None
        if not payload:
            return None
        try:
            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("snapshot is not a JSON object")
            return ClinicSnapshot.from_dict(data)
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unparseable snapshot %r: %s", self.snapshot_key, exc)
            return None

    def _persist(self) -> None:
        try:
            payload = json.dumps(self.db.to_dict(), ensure_ascii=False)
            self.storage.write(self.snapshot_key, payload)
        except (StorageError, TypeError, ValueError) as exc:
            logger.warning("Unable to persist snapshot %r: %s", self.snapshot_key, exc)

    @property
    def db(self) -> ClinicSnapshot:
        if self._db is None:
            self.load()
        assert self._db is not None
        return self._db

    def _delay(self) -> None:
        if self.latency:
            time.sleep(self.latency)

    def _generate_id(self, prefix: str, taken: Iterable[str]) -> str:
        existing = set(taken)
        while True:
            candidate = f"{prefix}_{''.join(random.choices(_ID_ALPHABET, k=7))}"
            if candidate not in existing:
                return candidate

    # ------------------------------------------------------------------
    # reference data

    def get_dictionaries(self) -> Dictionaries:
        self._delay()
        return self.db.dictionaries()

    def get_doctors(self) -> List[Doctor]:
        self._delay()
        return [doctor for doctor in self.db.doctors if doctor.active]

    def get_all_doctors(self) -> List[Doctor]:
        self._delay()
        return list(self.db.doctors)

    def get_doctor(self, doctor_id: str) -> Doctor:
        for doctor in self.db.doctors:
            if doctor.id == doctor_id:
                return doctor
        raise NotFoundError("Doctor", doctor_id)

    def get_services(self) -> List[Service]:
        self._delay()
        return [service for service in self.db.services if service.active]

    def get_all_services(self) -> List[Service]:
        self._delay()
        return list(self.db.services)

    def get_service(self, service_id: str) -> Service:
        for service in self.db.services:
            if service.id == service_id:
                return service
        raise NotFoundError("Service", service_id)

    def get_discount(self, discount_id: Optional[str]) -> Discount:
        """Return the discount with ``discount_id`` or the no-discount entry."""
        by_id = index_by_id(self.db.discounts)
        if discount_id and discount_id in by_id:
            return by_id[discount_id]
        return by_id.get(NO_DISCOUNT_ID, NO_DISCOUNT)

    def save_service(self, service: Service) -> Service:
        self._delay()
        if not service.id:
            service = replace(service, id=self._generate_id("svc", (s.id for s in self.db.services)))
        self._upsert(self.db.services, service)
        self._persist()
        return service

    def save_doctor(self, doctor: Doctor) -> Doctor:
        self._delay()
        if not doctor.id:
            doctor = replace(doctor, id=self._generate_id("doc", (d.id for d in self.db.doctors)))
        self._upsert(self.db.doctors, doctor)
        self._persist()
        return doctor

    def save_discount(self, discount: Discount) -> Discount:
        self._delay()
        if not 0 <= discount.percent <= 100:
            raise ValueError(f"Discount percent must be within 0..100, got {discount.percent}")
        if not discount.id:
            discount = replace(discount, id=self._generate_id("disc", (d.id for d in self.db.discounts)))
        self._upsert(self.db.discounts, discount)
        self._persist()
        return discount

    @staticmethod
    def _upsert(records: List[Any], record: Any) -> None:
        for index, current in enumerate(records):
            if current.id == record.id:
                records[index] = record
                return
        records.append(record)

    # ------------------------------------------------------------------
    # patients

    def get_patients(self) -> List[Patient]:
        self._delay()
        return list(self.db.patients)

    def get_patient(self, patient_id: str) -> Patient:
        for patient in self.db.patients:
            if patient.id == patient_id:
                return patient
        raise NotFoundError("Patient", patient_id)

    def search_patients_by_phone(self, phone: str) -> List[Patient]:
        self._delay()
        wanted = digits_only(phone)
        return [patient for patient in self.db.patients if digits_only(patient.phone) == wanted]

    def create_or_update_patient(self, values: Mapping[str, Any]) -> Patient:
        """Merge ``values`` into the patient with the same id, or add a new one.

        ``values`` uses the :class:`Patient` field names. Supplied keys
        overwrite the stored ones; an unknown or missing id creates a patient.
        """
        self._delay()
        known = {f.name for f in fields(Patient)}
        updates = {key: value for key, value in values.items() if key in known}
        patient_id = updates.pop("id", None)

        if patient_id:
            for index, current in enumerate(self.db.patients):
                if current.id == patient_id:
                    updated = replace(current, **updates)
                    self.db.patients[index] = updated
                    self._persist()
                    return updated

        defaults: Dict[str, Any] = {
            "last_name": "",
            "first_name": "",
            "middle_name": "",
            "gender": "",
            "birth_date": None,
            "phone": "",
            "address": "",
        }
        defaults.update(updates)
        created = Patient(id=self._generate_id("pat", (p.id for p in self.db.patients)), **defaults)
        self.db.patients.append(created)
        self._persist()
        return created

    def create_patient_card(
        self,
        *,
        patient_id: str,
        card_type_id: str,
        card_number: str,
        opened_at: Optional[date],
        insurance: bool = False,
        responsible_doctor_id: Optional[str] = None,
    ) -> PatientCard:
        self._delay()
        card = PatientCard(
            id=self._generate_id("pc", (c.id for c in self.db.patient_cards)),
            patient_id=patient_id,
            card_type_id=card_type_id,
            card_number=card_number,
            opened_at=opened_at,
            insurance=insurance,
            responsible_doctor_id=responsible_doctor_id,
        )
        self.db.patient_cards.append(card)
        self._persist()
        return card

    def get_patient_cards(self, patient_id: Optional[str] = None) -> List[PatientCard]:
        self._delay()
        return [card for card in self.db.patient_cards if patient_id is None or card.patient_id == patient_id]

    # ------------------------------------------------------------------
    # registration drafts

    def create_registration_draft(self, draft: RegistrationDraft) -> RegistrationDraft:
        """Store ``draft`` under a fresh id and creation timestamp."""
        self._delay()
        created = replace(
            draft,
            id=self._generate_id("reg", (d.id for d in self.db.registration_drafts)),
            created_at=_now(),
        )
        self.db.registration_drafts.append(created)
        self._persist()
        logger.info("Registration draft %s created for patient %s (total %s)", created.id, created.patient_id, created.total)
        return created

    def get_registration_draft(self, draft_id: str) -> RegistrationDraft:
        for draft in self.db.registration_drafts:
            if draft.id == draft_id:
                return draft
        raise NotFoundError("Registration draft", draft_id)

    def get_registration_drafts(self) -> List[RegistrationDraft]:
        self._delay()
        return list(self.db.registration_drafts)

    def record_payment(
        self,
        draft_id: str,
        *,
        payment_method: str,
        paid_amount: int,
        paid_at: Optional[datetime] = None,
    ) -> RegistrationDraft:
        """Mark the draft as paid; a draft can only be marked once."""
        self._delay()
        for index, current in enumerate(self.db.registration_drafts):
            if current.id != draft_id:
                continue
            if current.is_paid:
                raise PaymentAlreadyCompletedError(draft_id)
            updated = replace(
                current,
                payment_method=payment_method,
                paid_amount=int(paid_amount),
                paid_at=paid_at or _now(),
            )
            self.db.registration_drafts[index] = updated
            self._persist()
            return updated
        raise NotFoundError("Registration draft", draft_id)

    # ------------------------------------------------------------------
    # income ledger

    def get_income(self) -> List[IncomeEntry]:
        self._delay()
        return list(self.db.income)

    def add_income_entries(self, entries: Iterable[IncomeEntry]) -> None:
        self._delay()
        self.db.income.extend(entries)
        self._persist()
