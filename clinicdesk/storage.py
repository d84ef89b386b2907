"""Snapshot persistence strategies for the clinic store.

Each strategy keeps opaque JSON text under a string key. The repository owns
the serialisation; storages only move text in and out of their medium.
"""
from __future__ import annotations

import logging
import re
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import pymysql
from pymysql import err as pymysql_errors

from .exceptions import StorageError

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


class SnapshotStorage:
    """Interface shared by all storage strategies."""

    def read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def write(self, key: str, payload: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemoryStorage(SnapshotStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def write(self, key: str, payload: str) -> None:
        self._values[key] = payload


class JsonFileStorage(SnapshotStorage):
    """One ``<key>.json`` file per snapshot inside ``directory``."""

    ENCODING = "utf-8"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        cleaned = _KEY_PATTERN.sub("_", key.strip()).strip("_") or "snapshot"
        return self.directory / f"{cleaned}.json"

    def read(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding=self.ENCODING)
        except OSError as exc:
            raise StorageError(f"Unable to read {path}: {exc}") from exc

    def write(self, key: str, payload: str) -> None:
        path = self.path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding=self.ENCODING)
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageError(f"Unable to write {path}: {exc}") from exc


class SQLiteStorage(SnapshotStorage):
    """Key/value snapshots in a local SQLite file."""

    CREATE_SQL = (
        "CREATE TABLE IF NOT EXISTS snapshots ("
        " key TEXT PRIMARY KEY,"
        " value TEXT NOT NULL,"
        " updated_at TEXT NOT NULL"
        ")"
    )

    def __init__(self, sqlite_path: Path) -> None:
        self.sqlite_path = Path(sqlite_path)

    def _connect(self) -> sqlite3.Connection:
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.sqlite_path, timeout=5)
        conn.execute(self.CREATE_SQL)
        return conn

    def read(self, key: str) -> Optional[str]:
        if not self.sqlite_path.exists():
            return None
        try:
            conn = self._connect()
            try:
                row = conn.execute("SELECT value FROM snapshots WHERE key = ?", (key,)).fetchone()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Unable to read snapshot {key!r} from {self.sqlite_path}: {exc}") from exc
        return row[0] if row else None

    def write(self, key: str, payload: str) -> None:
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        "INSERT OR REPLACE INTO snapshots(key, value, updated_at) VALUES(?, ?, ?)",
                        (key, payload, datetime.now().isoformat(timespec="seconds")),
                    )
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Unable to write snapshot {key!r} to {self.sqlite_path}: {exc}") from exc


class MySQLStorage(SnapshotStorage):
    """Key/value snapshots in a MySQL table reached through pymysql."""

    TABLE = "clinic_snapshots"

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 3306,
        user: str,
        password: str,
        database: str,
        charset: str = "utf8mb4",
    ) -> None:
        self._connection_kwargs = {
            "host": host,
            "port": int(port),
            "user": user,
            "password": password,
            "database": database,
        }
        self._charset = charset
        self._conn = None
        self._table_ready = False

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None
                self._table_ready = False

    def _connect_with_charset(self, charset: str):
        try:
            return pymysql.connect(charset=charset, autocommit=False, **self._connection_kwargs)
        except pymysql_errors.OperationalError as exc:
            error_code = exc.args[0] if exc.args else None
            if charset == "utf8mb4" and (error_code == 1115 or "Unknown character set" in str(exc)):
                # Servers older than 5.5.3 lack utf8mb4.
                try:
                    return pymysql.connect(charset="utf8", autocommit=False, **self._connection_kwargs)
                except pymysql_errors.MySQLError as fallback_exc:
                    raise StorageError(
                        "Unable to connect to MySQL using utf8mb4; fallback to utf8 failed"
                    ) from fallback_exc
            raise StorageError(f"Unable to connect to MySQL: {exc}") from exc
        except pymysql_errors.MySQLError as exc:
            raise StorageError(f"Unable to connect to MySQL: {exc}") from exc

    def _ensure_connection(self):
        if self._conn is None:
            self._conn = self._connect_with_charset(self._charset)
        else:
            try:
                self._conn.ping(reconnect=True)
            except pymysql_errors.MySQLError as exc:
                raise StorageError(f"Lost MySQL connection: {exc}") from exc
        if not self._table_ready:
            try:
                with self._conn.cursor() as cursor:
                    cursor.execute(
                        f"CREATE TABLE IF NOT EXISTS {self.TABLE} ("
                        " snapshot_key VARCHAR(191) NOT NULL PRIMARY KEY,"
                        " payload LONGTEXT NOT NULL,"
                        " updated_at DATETIME NOT NULL"
                        ")"
                    )
                self._conn.commit()
            except pymysql_errors.MySQLError as exc:
                raise StorageError(f"Unable to prepare {self.TABLE}: {exc}") from exc
            self._table_ready = True
        return self._conn

    def read(self, key: str) -> Optional[str]:
        conn = self._ensure_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(f"SELECT payload FROM {self.TABLE} WHERE snapshot_key = %s", (key,))
                row = cursor.fetchone()
        except pymysql_errors.MySQLError as exc:
            raise StorageError(f"Unable to read snapshot {key!r}: {exc}") from exc
        if not row:
            return None
        value = row[0]
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        return value

    def write(self, key: str, payload: str) -> None:
        conn = self._ensure_connection()
        cursor = None
        try:
            cursor = conn.cursor()
            conn.begin()
            cursor.execute(
                f"INSERT INTO {self.TABLE} (snapshot_key, payload, updated_at) VALUES (%s, %s, %s) "
                "ON DUPLICATE KEY UPDATE payload = VALUES(payload), updated_at = VALUES(updated_at)",
                (key, payload, datetime.now().replace(microsecond=0)),
            )
            conn.commit()
        except pymysql_errors.MySQLError as exc:
            try:
                conn.rollback()
            except pymysql_errors.MySQLError:
                logger.debug("Rollback failed after write error on %r", key)
            raise StorageError(f"Unable to write snapshot {key!r}: {exc}") from exc
        finally:
            if cursor is not None:
                try:
                    cursor.close()
                except pymysql_errors.MySQLError:
                    logger.debug("Unable to close cursor after writing %r", key)


def build_storage(backend: str, path: Optional[Path] = None, mysql_settings: Optional[Dict[str, Any]] = None) -> SnapshotStorage:
    """Create the storage strategy named by ``backend``."""
    name = (backend or "memory").strip().lower()
    logger.debug("Using %s snapshot storage", name)
    if name == "memory":
        return MemoryStorage()
    if name == "json":
        return JsonFileStorage(Path(path or "data"))
    if name == "sqlite":
        base = Path(path or "data")
        return SQLiteStorage(base if base.suffix else base / "clinic.sqlite")
    if name == "mysql":
        cfg = mysql_settings or {}
        return MySQLStorage(
            host=cfg.get("host", "localhost"),
            port=int(cfg.get("port", 3306)),
            user=cfg.get("user", ""),
            password=cfg.get("password", ""),
            database=cfg.get("database", "clinicdb"),
        )
    raise StorageError(f"Unknown storage backend: {backend}")
