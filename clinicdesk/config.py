"""Configuration helpers for the clinic desk."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

STORAGE_BACKENDS = ("memory", "json", "sqlite", "mysql")


@dataclass
class ClinicInfo:
    name: str = ""
    address: str = ""
    phone: str = ""
    currency: str = "UZS"
    timezone: str = "Asia/Tashkent"
    default_doctor_id: str = ""


@dataclass
class StorageInfo:
    backend: str = "json"
    path: str = "data"
    snapshot_key: str = "clinic_db_mock"
    latency: float = 0.0
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = ""
    mysql_password: str = ""
    mysql_database: str = "clinicdb"


@dataclass
class ReceiptOptions:
    output_directory: str = "receipts"


@dataclass
class BillingOptions:
    reconcile_rounding: bool = False
    default_salary_percent: int = 30


@dataclass
class AppSettings:
    clinic: ClinicInfo = field(default_factory=ClinicInfo)
    storage: StorageInfo = field(default_factory=StorageInfo)
    receipt: ReceiptOptions = field(default_factory=ReceiptOptions)
    billing: BillingOptions = field(default_factory=BillingOptions)


class ConfigManager:
    """Load and persist application configuration."""

    def __init__(self, config_path: Path) -> None:
        self.config_path = Path(config_path)
        self.settings = AppSettings()
        self.load()

    def load(self) -> None:
        if not self.config_path.exists():
            return
        data = json.loads(self.config_path.read_text(encoding="utf-8"))
        self.settings = self._from_dict(data)
        self._normalise_paths()

    def save(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._normalise_paths()
        payload = self._to_dict()
        self.config_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _to_dict(self) -> Dict[str, Any]:
        return {
            "clinic": asdict(self.settings.clinic),
            "storage": asdict(self.settings.storage),
            "receipt": asdict(self.settings.receipt),
            "billing": asdict(self.settings.billing),
        }

    def _from_dict(self, data: Dict[str, Any]) -> AppSettings:
        return AppSettings(
            clinic=ClinicInfo(**self._merge(ClinicInfo(), data.get("clinic", {}))),
            storage=StorageInfo(**self._merge(StorageInfo(), data.get("storage", {}))),
            receipt=ReceiptOptions(**self._merge(ReceiptOptions(), data.get("receipt", {}))),
            billing=BillingOptions(**self._merge(BillingOptions(), data.get("billing", {}))),
        )

    @staticmethod
    def _merge(defaults: Any, overrides: Dict[str, Any]) -> Dict[str, Any]:
        # Unknown keys from older settings files are dropped.
        base = asdict(defaults)
        base.update({key: value for key, value in overrides.items() if key in base})
        return base

    def _normalise_paths(self) -> None:
        self.settings.receipt.output_directory = self._normalise_relative(
            self.settings.receipt.output_directory, "receipts"
        )
        backend = (self.settings.storage.backend or "").strip().lower()
        self.settings.storage.backend = backend if backend in STORAGE_BACKENDS else "json"

    def _normalise_relative(self, value: str, fallback: str) -> str:
        text_value = (value or "").strip()
        if not text_value:
            return fallback
        candidate = Path(text_value)
        base_dir = self.config_path.parent.resolve()

        if candidate.is_absolute():
            resolved = candidate.resolve(strict=False)
            try:
                relative = resolved.relative_to(base_dir)
            except ValueError:
                parts = [part for part in candidate.parts if part not in (candidate.anchor, "")]
                if not parts:
                    return fallback
                candidate = Path(parts[-1])
            else:
                candidate = relative
        else:
            parts = []
            for part in candidate.parts:
                if part in ("", "."):
                    continue
                if part == "..":
                    if parts:
                        parts.pop()
                    continue
                parts.append(part)
            if not parts:
                return fallback
            candidate = Path(*parts)

        normalised = candidate.as_posix()
        if not normalised or normalised == ".":
            return fallback
        return normalised

    def update_clinic(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.clinic, key):
                setattr(self.settings.clinic, key, value)

    def update_storage(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.storage, key):
                setattr(self.settings.storage, key, value)

    def update_billing(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.billing, key):
                setattr(self.settings.billing, key, value)

    def update_receipt(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if hasattr(self.settings.receipt, key):
                if key == "output_directory":
                    value = self._normalise_relative(str(value), "receipts")
                setattr(self.settings.receipt, key, value)

    def resolve_storage_path(self) -> Path:
        storage_path = Path(self.settings.storage.path or "data")
        if not storage_path.is_absolute():
            storage_path = self.config_path.parent / storage_path
        return storage_path

    def resolve_output_dir(self) -> Path:
        output_value = self._normalise_relative(self.settings.receipt.output_directory, "receipts")
        if output_value != self.settings.receipt.output_directory:
            self.settings.receipt.output_directory = output_value
        out_dir = (self.config_path.parent / Path(output_value)).resolve()
        out_dir.mkdir(parents=True, exist_ok=True)
        return out_dir

    def mysql_settings(self) -> Dict[str, Any]:
        storage = self.settings.storage
        return {
            "host": storage.mysql_host,
            "port": storage.mysql_port,
            "user": storage.mysql_user,
            "password": storage.mysql_password,
            "database": storage.mysql_database,
        }

    def default_doctor_id(self) -> Optional[str]:
        value = self.settings.clinic.default_doctor_id.strip()
        return value or None
