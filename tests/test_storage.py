import sqlite3
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from pymysql import err as pymysql_errors

from clinicdesk.exceptions import StorageError
from clinicdesk.repository import ClinicRepository
from clinicdesk.storage import (
    JsonFileStorage,
    MemoryStorage,
    MySQLStorage,
    SQLiteStorage,
    build_storage,
)


class MemoryStorageTests(unittest.TestCase):
    def test_read_write(self):
        storage = MemoryStorage({"a": "1"})
        self.assertEqual(storage.read("a"), "1")
        self.assertIsNone(storage.read("b"))
        storage.write("b", "2")
        self.assertEqual(storage.read("b"), "2")


class JsonFileStorageTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file_reads_none(self):
        self.assertIsNone(JsonFileStorage(self.root).read("clinic_db_mock"))

    def test_write_creates_directory_and_file(self):
        storage = JsonFileStorage(self.root / "nested")
        storage.write("clinic_db_mock", '{"x": "Ўзбек"}')
        self.assertEqual(storage.read("clinic_db_mock"), '{"x": "Ўзбек"}')
        self.assertTrue((self.root / "nested" / "clinic_db_mock.json").exists())
        self.assertEqual(list((self.root / "nested").glob("*.tmp")), [])

    def test_key_is_sanitised(self):
        storage = JsonFileStorage(self.root)
        self.assertEqual(storage.path_for("clinic db/mock").name, "clinic_db_mock.json")
        self.assertEqual(storage.path_for("clinic db/mock").parent, self.root)
        self.assertEqual(storage.path_for("///").name, "snapshot.json")

    def test_unwritable_target_raises_storage_error(self):
        blocker = self.root / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        with self.assertRaises(StorageError):
            JsonFileStorage(blocker).write("k", "{}")


class SQLiteStorageTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "db" / "clinic.sqlite"

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_database_reads_none(self):
        storage = SQLiteStorage(self.db_path)
        self.assertIsNone(storage.read("clinic_db_mock"))
        self.assertFalse(self.db_path.exists())

    def test_overwrite_keeps_one_row(self):
        storage = SQLiteStorage(self.db_path)
        storage.write("clinic_db_mock", "first")
        storage.write("clinic_db_mock", "second")
        self.assertEqual(storage.read("clinic_db_mock"), "second")
        self.assertIsNone(storage.read("other"))
        conn = sqlite3.connect(self.db_path)
        try:
            count = conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
        finally:
            conn.close()
        self.assertEqual(count, 1)


def _mock_connection(row=None):
    cursor = MagicMock()
    cursor.__enter__.return_value = cursor
    cursor.fetchone.return_value = row
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return conn, cursor


class MySQLStorageTests(unittest.TestCase):
    def _storage(self):
        return MySQLStorage(host="db", port=3307, user="desk", password="secret", database="clinic")

    @patch("clinicdesk.storage.pymysql.connect")
    def test_read_decodes_bytes(self, connect):
        conn, cursor = _mock_connection(row=(b'{"a": 1}',))
        connect.return_value = conn
        storage = self._storage()
        self.assertEqual(storage.read("clinic_db_mock"), '{"a": 1}')
        connect.assert_called_once_with(
            charset="utf8mb4", autocommit=False, host="db", port=3307, user="desk", password="secret", database="clinic"
        )
        statements = [call.args[0] for call in cursor.execute.call_args_list]
        self.assertTrue(statements[0].startswith("CREATE TABLE IF NOT EXISTS clinic_snapshots"))
        self.assertEqual(cursor.execute.call_args_list[-1].args[1], ("clinic_db_mock",))

    @patch("clinicdesk.storage.pymysql.connect")
    def test_missing_row_reads_none(self, connect):
        connect.return_value, _ = _mock_connection(row=None)
        self.assertIsNone(self._storage().read("clinic_db_mock"))

    @patch("clinicdesk.storage.pymysql.connect")
    def test_write_commits(self, connect):
        conn, cursor = _mock_connection()
        connect.return_value = conn
        self._storage().write("clinic_db_mock", "{}")
        conn.begin.assert_called_once()
        sql, params = cursor.execute.call_args_list[-1].args
        self.assertIn("ON DUPLICATE KEY UPDATE", sql)
        self.assertEqual(params[:2], ("clinic_db_mock", "{}"))
        self.assertGreaterEqual(conn.commit.call_count, 2)
        conn.rollback.assert_not_called()

    @patch("clinicdesk.storage.pymysql.connect")
    def test_failed_write_rolls_back(self, connect):
        conn, cursor = _mock_connection()
        connect.return_value = conn
        storage = self._storage()
        storage.read("clinic_db_mock")
        cursor.execute.side_effect = pymysql_errors.OperationalError(2013, "Lost connection")
        with self.assertRaises(StorageError):
            storage.write("clinic_db_mock", "{}")
        conn.rollback.assert_called_once()

    @patch("clinicdesk.storage.pymysql.connect")
    def test_failed_rollback_still_raises_storage_error(self, connect):
        conn, cursor = _mock_connection()
        connect.return_value = conn
        storage = self._storage()
        storage.read("clinic_db_mock")
        cursor.execute.side_effect = pymysql_errors.OperationalError(2013, "Lost connection")
        conn.rollback.side_effect = pymysql_errors.InterfaceError(0, "")
        with self.assertRaises(StorageError):
            storage.write("clinic_db_mock", "{}")
        cursor.close.assert_called_once()

    @patch("clinicdesk.storage.pymysql.connect")
    def test_cursor_failure_raises_storage_error(self, connect):
        conn, _ = _mock_connection()
        connect.return_value = conn
        storage = self._storage()
        storage.read("clinic_db_mock")
        conn.cursor.side_effect = pymysql_errors.InterfaceError(0, "")
        with self.assertRaises(StorageError):
            storage.write("clinic_db_mock", "{}")

    @patch("clinicdesk.storage.pymysql.connect")
    def test_repository_survives_dropped_connection_on_write(self, connect):
        conn, cursor = _mock_connection(row=None)
        connect.return_value = conn
        repo = ClinicRepository(self._storage())
        repo.load()
        cursor.execute.side_effect = pymysql_errors.OperationalError(2013, "Lost connection")
        conn.rollback.side_effect = pymysql_errors.InterfaceError(0, "")
        with self.assertLogs("clinicdesk.repository", level="WARNING"):
            repo.add_income_entries([])
        self.assertEqual(repo.get_income(), [])

    @patch("clinicdesk.storage.pymysql.connect")
    def test_falls_back_to_utf8(self, connect):
        conn, _ = _mock_connection()
        connect.side_effect = [pymysql_errors.OperationalError(1115, "Unknown character set: 'utf8mb4'"), conn]
        self._storage().read("clinic_db_mock")
        self.assertEqual([call.kwargs["charset"] for call in connect.call_args_list], ["utf8mb4", "utf8"])

    @patch("clinicdesk.storage.pymysql.connect")
    def test_connection_failure_raises_storage_error(self, connect):
        connect.side_effect = pymysql_errors.OperationalError(2003, "Can't connect")
        with self.assertRaises(StorageError):
            self._storage().read("clinic_db_mock")

    @patch("clinicdesk.storage.pymysql.connect")
    def test_close_resets_connection(self, connect):
        conn, _ = _mock_connection()
        connect.return_value = conn
        storage = self._storage()
        storage.read("clinic_db_mock")
        storage.close()
        conn.close.assert_called_once()
        storage.read("clinic_db_mock")
        self.assertEqual(connect.call_count, 2)


class BuildStorageTests(unittest.TestCase):
    def test_backends(self):
        self.assertIsInstance(build_storage("memory"), MemoryStorage)
        self.assertIsInstance(build_storage(" JSON ", Path("data")), JsonFileStorage)
        sqlite_storage = build_storage("sqlite", Path("data"))
        self.assertEqual(sqlite_storage.sqlite_path, Path("data") / "clinic.sqlite")
        self.assertEqual(build_storage("sqlite", Path("x.db")).sqlite_path, Path("x.db"))
        self.assertIsInstance(build_storage("mysql", mysql_settings={"user": "u"}), MySQLStorage)

    def test_unknown_backend(self):
        with self.assertRaises(StorageError):
            build_storage("redis")
