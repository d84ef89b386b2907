"""Wire settings, storage and the registration/payment services together."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import ConfigManager
from .income import PaymentDesk, PaymentOutcome
from .models import index_by_id
from .receipt import ReceiptPDFGenerator
from .registration import RegistrationBuilder, RegistrationResult
from .repository import ClinicRepository
from .storage import build_storage
from .validation import RegistrationForm

logger = logging.getLogger(__name__)


class ClinicDesk:
    """Front desk session: register patients, take payments, print receipts."""

    def __init__(self, config: ConfigManager, repository: Optional[ClinicRepository] = None) -> None:
        self.config = config
        settings = config.settings
        if repository is None:
            storage = build_storage(
                settings.storage.backend,
                config.resolve_storage_path(),
                config.mysql_settings(),
            )
            repository = ClinicRepository(
                storage,
                snapshot_key=settings.storage.snapshot_key,
                latency=settings.storage.latency,
            )
        self.repository = repository
        self.repository.load()
        self.registration = RegistrationBuilder(self.repository)
        self.payments = PaymentDesk(
            self.repository,
            default_doctor_id=config.default_doctor_id(),
            reconcile_rounding=settings.billing.reconcile_rounding,
        )

    def register(self, form: RegistrationForm) -> RegistrationResult:
        return self.registration.submit(form)

    def complete_payment(
        self,
        draft_id: str,
        *,
        payment_method: Optional[str] = None,
        paid: bool = False,
        paid_amount: Optional[int] = None,
    ) -> PaymentOutcome:
        return self.payments.complete_payment(
            draft_id, payment_method=payment_method, paid=paid, paid_amount=paid_amount
        )

    def print_receipt(self, draft_id: str, logo_path: Optional[Path] = None) -> Path:
        draft = self.repository.get_registration_draft(draft_id)
        patient = self.repository.get_patient(draft.patient_id)
        services = index_by_id(self.repository.get_all_services())
        doctors = index_by_id(self.repository.get_all_doctors())
        generator = ReceiptPDFGenerator(self.config.resolve_output_dir(), currency=self.config.settings.clinic.currency)
        path = generator.generate(self.config.settings.clinic, patient, draft, services, doctors, logo_path=logo_path)
        logger.info("Receipt for draft %s written to %s", draft_id, path)
        return path

    def close(self) -> None:
        self.repository.storage.close()


def open_desk(config_path: Path) -> ClinicDesk:
    return ClinicDesk(ConfigManager(config_path))
