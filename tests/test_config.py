import json
import tempfile
import unittest
from pathlib import Path

from clinicdesk.config import ConfigManager


class ConfigManagerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.path = self.root / "settings.json"

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, payload):
        self.path.write_text(json.dumps(payload), encoding="utf-8")

    def test_defaults_without_file(self):
        config = ConfigManager(self.path)
        self.assertEqual(config.settings.storage.backend, "json")
        self.assertEqual(config.settings.storage.snapshot_key, "clinic_db_mock")
        self.assertEqual(config.settings.clinic.currency, "UZS")
        self.assertFalse(config.settings.billing.reconcile_rounding)
        self.assertIsNone(config.default_doctor_id())

    def test_partial_file_merges_with_defaults(self):
        self._write({"clinic": {"name": "Shifo", "unknown": 1}, "billing": {"reconcile_rounding": True}})
        config = ConfigManager(self.path)
        self.assertEqual(config.settings.clinic.name, "Shifo")
        self.assertEqual(config.settings.clinic.timezone, "Asia/Tashkent")
        self.assertTrue(config.settings.billing.reconcile_rounding)
        self.assertEqual(config.settings.billing.default_salary_percent, 30)

    def test_unknown_backend_falls_back_to_json(self):
        self._write({"storage": {"backend": "Redis"}})
        self.assertEqual(ConfigManager(self.path).settings.storage.backend, "json")
        self._write({"storage": {"backend": " SQLite "}})
        self.assertEqual(ConfigManager(self.path).settings.storage.backend, "sqlite")

    def test_save_round_trip(self):
        config = ConfigManager(self.path)
        config.update_clinic(name="Shifo", default_doctor_id=" doc_1002 ", bogus="x")
        config.update_storage(backend="sqlite", path="store")
        config.update_billing(default_salary_percent=25)
        config.save()
        reloaded = ConfigManager(self.path)
        self.assertEqual(reloaded.settings.clinic.name, "Shifo")
        self.assertEqual(reloaded.default_doctor_id(), "doc_1002")
        self.assertEqual(reloaded.settings.storage.backend, "sqlite")
        self.assertEqual(reloaded.settings.billing.default_salary_percent, 25)
        self.assertNotIn("bogus", json.loads(self.path.read_text(encoding="utf-8"))["clinic"])

    def test_paths_resolve_against_config_directory(self):
        config = ConfigManager(self.path)
        config.update_storage(path="store")
        self.assertEqual(config.resolve_storage_path(), self.root / "store")
        config.update_receipt(output_directory="../../out/./pdf")
        self.assertEqual(config.settings.receipt.output_directory, "out/pdf")
        out_dir = config.resolve_output_dir()
        self.assertEqual(out_dir, (self.root / "out" / "pdf").resolve())
        self.assertTrue(out_dir.is_dir())

    def test_blank_output_directory_uses_fallback(self):
        config = ConfigManager(self.path)
        config.update_receipt(output_directory="  ")
        self.assertEqual(config.settings.receipt.output_directory, "receipts")

    def test_mysql_settings(self):
        self._write({"storage": {"backend": "mysql", "mysql_host": "db", "mysql_user": "desk"}})
        settings = ConfigManager(self.path).mysql_settings()
        self.assertEqual(settings["host"], "db")
        self.assertEqual(settings["user"], "desk")
        self.assertEqual(settings["port"], 3306)
        self.assertEqual(settings["database"], "clinicdb")
