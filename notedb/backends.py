"""
Data Access backends.

Everything above this layer talks to the database through one narrow
contract:

    execute(sql, params) -> list[dict]   ordered, column-name keyed rows
    run(sql, params)     -> None         durable on return

Classes:
- DataAccess: Abstract base class defining the contract plus metadata helpers
- EmbeddedBackend: in-process SQLite working on an in-memory image of a file;
  every successful write persists the full image back to the file
- RemoteBackend: HTTP service exposing POST /query and POST /execute

Every failure is raised as TransientBackendError carrying the engine's
message, so callers can inspect it (the upsert engine does) without knowing
which backend produced it.
"""

import logging
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from . import safe_sql
from .errors import ConfigError, TransientBackendError

logger = logging.getLogger(__name__)


class DataAccess(ABC):
    """
    Abstract base class for data access backends.

    Subclasses implement execute, run and close. Metadata helpers are built
    on execute so they behave identically for every backend.
    """

    mode: str = ""

    @abstractmethod
    def execute(self, sql: str, params: list | tuple | None = None) -> list[dict[str, Any]]:
        """Execute a statement that returns rows."""
        pass

    @abstractmethod
    def run(self, sql: str, params: list | tuple | None = None) -> None:
        """Execute a statement that writes. Durable on return."""
        pass

    def close(self) -> None:
        """Release the underlying connection or session."""
        pass

    def table_columns(self, table: str) -> list[str]:
        """Column names of *table*, in declaration order. Empty if the table does not exist."""
        rows = self.execute(safe_sql.pragma_table_info(table))
        return [row["name"] for row in rows]

    def list_tables(self) -> list[str]:
        return [row["name"] for row in self.execute(safe_sql.list_tables())]

    def __enter__(self) -> "DataAccess":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


# ============================================================
# EMBEDDED (SQLite)
# ============================================================


class EmbeddedBackend(DataAccess):
    """
    Embedded SQLite backend.

    The database file is read into an in-memory connection when the backend
    opens. Each successful run() writes the whole in-memory image back to the
    file (temporary file + atomic replace). There is no write-ahead log and no
    incremental diff: the file only ever holds complete images.
    """

    mode = "local"

    def __init__(self, db_file: str | Path):
        if not db_file:
            raise ConfigError("No database file path configured.")
        self.db_path = Path(db_file).expanduser()
        self._lock = threading.RLock()
        self.conn: sqlite3.Connection | None = None
        self._load()

    def _load(self) -> None:
        """Read the database file into memory. An absent file starts an empty database."""
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        conn.row_factory = sqlite3.Row
        if self.db_path.exists():
            try:
                source = sqlite3.connect(str(self.db_path))
                try:
                    source.backup(conn)
                finally:
                    source.close()
            except sqlite3.Error as e:
                conn.close()
                logger.error("EmbeddedBackend could not read %s: %s", self.db_path, e)
                raise TransientBackendError(f"Error reading DB: {e}") from e
            logger.info("EmbeddedBackend loaded %s into memory", self.db_path)
        else:
            logger.info("EmbeddedBackend: %s does not exist yet, starting empty", self.db_path)
        self.conn = conn

    def _require_conn(self) -> sqlite3.Connection:
        if self.conn is None:
            raise TransientBackendError("Database not loaded.")
        return self.conn

    def execute(self, sql: str, params: list | tuple | None = None) -> list[dict[str, Any]]:
        params = list(params or [])
        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                logger.debug("EmbeddedBackend.execute failed: %s | %s %s", e, sql, params)
                raise TransientBackendError(str(e), sql, params) from e
            return [dict(row) for row in rows]

    def run(self, sql: str, params: list | tuple | None = None) -> None:
        params = list(params or [])
        with self._lock:
            conn = self._require_conn()
            try:
                conn.execute(sql, params)
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.debug("EmbeddedBackend.run failed: %s | %s %s", e, sql, params)
                raise TransientBackendError(str(e), sql, params) from e
            self.save()

    def save(self) -> None:
        """Persist the full in-memory image to the database file."""
        with self._lock:
            conn = self._require_conn()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.db_path.name}.", suffix=".tmp", dir=str(self.db_path.parent)
            )
            os.close(fd)
            try:
                target = sqlite3.connect(tmp_name)
                try:
                    conn.backup(target)
                finally:
                    target.close()
                os.replace(tmp_name, self.db_path)
            except (sqlite3.Error, OSError) as e:
                logger.error("Error saving database to %s: %s", self.db_path, e)
                Path(tmp_name).unlink(missing_ok=True)
                raise TransientBackendError(f"Error saving database changes: {e}") from e

    def close(self) -> None:
        with self._lock:
            if self.conn is not None:
                logger.info("EmbeddedBackend closing %s", self.db_path)
                self.conn.close()
                self.conn = None


# ============================================================
# REMOTE (HTTP)
# ============================================================


class RemoteBackend(DataAccess):
    """
    Remote HTTP backend.

    POSTs ``{"sql": ..., "params": [...]}`` to ``{base}/query`` (expects a JSON
    array of row objects) or ``{base}/execute`` (no body). A non-2xx response's
    body text is the error message.
    """

    mode = "remote"

    def __init__(
        self,
        base_url: str,
        cf_access_client_id: str = "",
        cf_access_client_secret: str = "",
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        if not base_url:
            raise ConfigError("No remote API base URL configured.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if cf_access_client_id and cf_access_client_secret:
            self.session.headers.update(
                {
                    "CF-Access-Client-Id": cf_access_client_id,
                    "CF-Access-Client-Secret": cf_access_client_secret,
                }
            )

    def _post(self, endpoint: str, sql: str, params: list) -> requests.Response:
        url = f"{self.base_url}/{endpoint}"
        try:
            resp = self.session.post(url, json={"sql": sql, "params": params}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("RemoteBackend POST %s failed: %s", url, e)
            raise TransientBackendError(str(e), sql, params) from e
        if not resp.ok:
            logger.debug("RemoteBackend %s returned %s: %s", url, resp.status_code, resp.text)
            raise TransientBackendError(resp.text or f"HTTP {resp.status_code}", sql, params)
        return resp

    def execute(self, sql: str, params: list | tuple | None = None) -> list[dict[str, Any]]:
        params = list(params or [])
        resp = self._post("query", sql, params)
        try:
            rows = resp.json()
        except ValueError as e:
            raise TransientBackendError(f"Malformed response from remote query: {e}", sql, params) from e
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise TransientBackendError("Malformed response from remote query: expected a JSON array of objects", sql, params)
        return rows

    def run(self, sql: str, params: list | tuple | None = None) -> None:
        self._post("execute", sql, list(params or []))

    def close(self) -> None:
        self.session.close()


def open_backend(settings) -> DataAccess:
    """Open the backend selected by ``settings.mode``."""
    if settings.mode == "remote":
        logger.info("Opening remote backend at %s", settings.api_base_url)
        return RemoteBackend(
            settings.api_base_url,
            cf_access_client_id=settings.cf_access_client_id,
            cf_access_client_secret=settings.cf_access_client_secret,
            timeout=settings.request_timeout,
        )
    if settings.mode == "local":
        return EmbeddedBackend(settings.db_file_path)
    raise ConfigError(f"Unknown database mode: {settings.mode!r}")


# ============================================================
# READ PATH
# ============================================================


@dataclass(frozen=True)
class ResultSet:
    columns: list[str]
    rows: list[list[Any]]

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> "ResultSet":
        if not records:
            return cls([], [])
        columns = list(records[0].keys())
        return cls(columns, [[record.get(col) for col in columns] for record in records])

    def __len__(self) -> int:
        return len(self.rows)


def run_compiled(backend: DataAccess, compiled) -> ResultSet:
    """Execute a CompiledQuery and return its rows with column names."""
    return ResultSet.from_records(backend.execute(compiled.sql, compiled.params))
