"""
nodekb — node database

File: src/nodekb/persistence/node_db.py

Purpose
- SQLite schema management, migrations, and connection lifecycle for the node
  knowledge base (node rows, template example configurations, node versions).
- Optional FTS5 full-text index over node identifiers, names and descriptions.

Functional requirements
- Must support idempotent migration application.
- Must keep working when the SQLite build lacks FTS5: the index is created outside the
  migration chain and its absence only disables the indexed search strategy.

Non-functional requirements
- Connections are short-lived and opened per call; readers never hold long locks.
"""

from __future__ import annotations

import hashlib
import sqlite3
import time
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from nodekb.constants import NODE_DB_SCHEMA_VERSION
from nodekb.domain.models import canonical_json

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRY_LIMIT: Final[int] = 4
DEFAULT_BUSY_RETRY_BACKOFF_MS: Final[int] = 25

FTS_TABLE: Final[str] = "nodes_fts"

_SCHEMA_VERSIONS_TABLE_SQL: Final[str] = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY CHECK (version > 0),
    name TEXT NOT NULL,
    checksum TEXT NOT NULL CHECK (length(checksum) = 64),
    applied_at TEXT NOT NULL
)
"""

_MIGRATION_0001_STATEMENTS: Final[tuple[str, ...]] = (
    _SCHEMA_VERSIONS_TABLE_SQL,
    """
    CREATE TABLE IF NOT EXISTS nodes (
        node_type TEXT PRIMARY KEY,
        package_name TEXT NOT NULL,
        display_name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        category TEXT,
        development_style TEXT NOT NULL DEFAULT 'programmatic',
        is_ai_tool INTEGER NOT NULL DEFAULT 0 CHECK (is_ai_tool IN (0, 1)),
        is_trigger INTEGER NOT NULL DEFAULT 0 CHECK (is_trigger IN (0, 1)),
        is_webhook INTEGER NOT NULL DEFAULT 0 CHECK (is_webhook IN (0, 1)),
        is_versioned INTEGER NOT NULL DEFAULT 0 CHECK (is_versioned IN (0, 1)),
        version TEXT NOT NULL DEFAULT '1',
        documentation TEXT,
        properties_schema TEXT NOT NULL,
        operations TEXT NOT NULL,
        credentials_required TEXT NOT NULL,
        outputs TEXT NOT NULL,
        output_names TEXT NOT NULL,
        is_community INTEGER NOT NULL DEFAULT 0 CHECK (is_community IN (0, 1)),
        is_verified INTEGER NOT NULL DEFAULT 0 CHECK (is_verified IN (0, 1)),
        author_name TEXT,
        npm_downloads INTEGER NOT NULL DEFAULT 0 CHECK (npm_downloads >= 0),
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS template_node_configs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        node_type TEXT NOT NULL,
        template_name TEXT NOT NULL,
        template_views INTEGER NOT NULL DEFAULT 0 CHECK (template_views >= 0),
        rank INTEGER NOT NULL DEFAULT 0 CHECK (rank >= 0),
        parameters_json TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE(node_type, template_name)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_nodes_package ON nodes(package_name)",
    "CREATE INDEX IF NOT EXISTS idx_nodes_category ON nodes(category)",
    "CREATE INDEX IF NOT EXISTS idx_nodes_community ON nodes(is_community, is_verified)",
    """
    CREATE INDEX IF NOT EXISTS idx_nodes_display_name
    ON nodes(display_name COLLATE NOCASE)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_template_node_configs_type_rank
    ON template_node_configs(node_type, rank, template_views DESC)
    """,
)

_MIGRATION_0002_STATEMENTS: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS node_versions (
        node_type TEXT NOT NULL,
        version TEXT NOT NULL,
        is_current_max INTEGER NOT NULL DEFAULT 0 CHECK (is_current_max IN (0, 1)),
        released_at TEXT,
        breaking_changes_json TEXT NOT NULL,
        deprecated_properties_json TEXT NOT NULL,
        added_properties_json TEXT NOT NULL,
        PRIMARY KEY (node_type, version),
        FOREIGN KEY(node_type) REFERENCES nodes(node_type) ON DELETE CASCADE
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_node_versions_current
    ON node_versions(node_type, is_current_max)
    """,
)

# External-content FTS5 index kept in sync by triggers. Not part of the migration chain
# because FTS5 is an optional SQLite module.
_SEARCH_INDEX_STATEMENTS: Final[tuple[str, ...]] = (
    f"""
    CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
        node_type,
        display_name,
        description,
        content='nodes',
        content_rowid='rowid'
    )
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS nodes_fts_after_insert AFTER INSERT ON nodes
    BEGIN
        INSERT INTO {FTS_TABLE}(rowid, node_type, display_name, description)
        VALUES (new.rowid, new.node_type, new.display_name, new.description);
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS nodes_fts_after_delete AFTER DELETE ON nodes
    BEGIN
        INSERT INTO {FTS_TABLE}({FTS_TABLE}, rowid, node_type, display_name, description)
        VALUES ('delete', old.rowid, old.node_type, old.display_name, old.description);
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS nodes_fts_after_update AFTER UPDATE ON nodes
    BEGIN
        INSERT INTO {FTS_TABLE}({FTS_TABLE}, rowid, node_type, display_name, description)
        VALUES ('delete', old.rowid, old.node_type, old.display_name, old.description);
        INSERT INTO {FTS_TABLE}(rowid, node_type, display_name, description)
        VALUES (new.rowid, new.node_type, new.display_name, new.description);
    END
    """,
    f"INSERT INTO {FTS_TABLE}({FTS_TABLE}) VALUES ('rebuild')",
)


@dataclass(frozen=True, slots=True)
class MigrationRecord:
    version: int
    name: str
    checksum: str
    applied_at: str


@dataclass(frozen=True, slots=True)
class _Migration:
    version: int
    name: str
    statements: tuple[str, ...]
    checksum: str


def _migration_checksum(version: int, name: str, statements: Sequence[str]) -> str:
    digest = hashlib.sha256()
    digest.update(f"{version}:{name}\n".encode())
    for statement in statements:
        normalized = "\n".join(line.rstrip() for line in statement.strip().splitlines())
        digest.update(normalized.encode("utf-8"))
        digest.update(b"\n--\n")
    return digest.hexdigest()


_MIGRATIONS: Final[tuple[_Migration, ...]] = (
    _Migration(
        version=1,
        name="initial_node_schema",
        statements=_MIGRATION_0001_STATEMENTS,
        checksum=_migration_checksum(1, "initial_node_schema", _MIGRATION_0001_STATEMENTS),
    ),
    _Migration(
        version=2,
        name="node_version_history",
        statements=_MIGRATION_0002_STATEMENTS,
        checksum=_migration_checksum(2, "node_version_history", _MIGRATION_0002_STATEMENTS),
    ),
)

_SQLITE_BUSY_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_BUSY", None),
        getattr(sqlite3, "SQLITE_BUSY_RECOVERY", None),
        getattr(sqlite3, "SQLITE_BUSY_SNAPSHOT", None),
        getattr(sqlite3, "SQLITE_LOCKED", None),
        getattr(sqlite3, "SQLITE_LOCKED_SHAREDCACHE", None),
    )
    if isinstance(code, int)
)

_SQLITE_CORRUPTION_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_CORRUPT", None),
        getattr(sqlite3, "SQLITE_NOTADB", None),
    )
    if isinstance(code, int)
)

_BUSY_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database is locked",
    "database table is locked",
    "database schema is locked",
)

_CORRUPTION_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database disk image is malformed",
    "malformed database",
    "file is not a database",
)


class NodeDBError(RuntimeError):
    """Base class for node database errors."""


class NodeDBBusyError(NodeDBError):
    """Raised when bounded busy retries are exhausted."""


class NodeDBMigrationError(NodeDBError):
    """Raised when migrations cannot be applied safely."""


class NodeDBCorruptionError(NodeDBError):
    """Raised when SQLite reports possible corruption."""


class NodeDB:
    """SQLite node database with deterministic migrations and safe helpers."""

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retry_limit: int = DEFAULT_BUSY_RETRY_LIMIT,
        busy_retry_backoff_ms: int = DEFAULT_BUSY_RETRY_BACKOFF_MS,
        logger: Any | None = None,
    ) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        if busy_retry_limit < 0:
            raise ValueError("busy_retry_limit must be >= 0")
        if busy_retry_backoff_ms < 0:
            raise ValueError("busy_retry_backoff_ms must be >= 0")

        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_ms = busy_retry_backoff_ms
        self._savepoint_counter = 0
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> sqlite3.Connection:
        """Open a configured SQLite connection for the node DB."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        self._configure_connection(conn)
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self,
        *,
        conn: sqlite3.Connection | None = None,
        immediate: bool = True,
    ) -> Iterator[sqlite3.Connection]:
        """Run statements inside an atomic transaction with savepoint support."""

        if conn is None:
            with self.connection() as owned_conn:
                with self.transaction(conn=owned_conn, immediate=immediate) as txn_conn:
                    yield txn_conn
                return

        if conn.in_transaction:
            savepoint = self._next_savepoint_name()
            self._execute_with_retry(conn, f"SAVEPOINT {savepoint}", (), operation="savepoint")
            try:
                yield conn
            except Exception:
                self._execute_with_retry(
                    conn,
                    f"ROLLBACK TO SAVEPOINT {savepoint}",
                    (),
                    operation="rollback to savepoint",
                )
                self._execute_with_retry(
                    conn,
                    f"RELEASE SAVEPOINT {savepoint}",
                    (),
                    operation="release savepoint",
                )
                raise
            else:
                self._execute_with_retry(
                    conn,
                    f"RELEASE SAVEPOINT {savepoint}",
                    (),
                    operation="release savepoint",
                )
            return

        begin_sql = "BEGIN IMMEDIATE" if immediate else "BEGIN"
        self._execute_with_retry(conn, begin_sql, (), operation="begin transaction")
        try:
            yield conn
        except Exception:
            self._execute_with_retry(conn, "ROLLBACK", (), operation="rollback transaction")
            raise
        else:
            self._execute_with_retry(conn, "COMMIT", (), operation="commit transaction")

    def migrate(self) -> int:
        """Apply migrations idempotently and return current schema version."""

        self._validate_migration_chain(NODE_DB_SCHEMA_VERSION)
        with self.connection() as conn:
            self._execute_with_retry(
                conn,
                _SCHEMA_VERSIONS_TABLE_SQL,
                (),
                operation="create schema_versions table",
            )
            applied = self._load_applied_migrations(conn)
            current_version = max(applied, default=0)
            if current_version > NODE_DB_SCHEMA_VERSION:
                raise NodeDBMigrationError(
                    "database schema is newer than supported by this release "
                    f"(db={current_version}, code={NODE_DB_SCHEMA_VERSION})"
                )

            for migration in _MIGRATIONS:
                if migration.version > NODE_DB_SCHEMA_VERSION:
                    continue

                record = applied.get(migration.version)
                if record is not None:
                    if record.checksum != migration.checksum:
                        raise NodeDBMigrationError(
                            "migration checksum mismatch for version "
                            f"{migration.version}: db={record.checksum} code={migration.checksum}"
                        )
                    continue

                applied_at = _utc_now_iso()
                with self.transaction(conn=conn, immediate=True) as tx:
                    for statement in migration.statements:
                        self._execute_with_retry(
                            tx,
                            statement,
                            (),
                            operation=f"apply migration {migration.version}",
                        )
                    self._execute_with_retry(
                        tx,
                        """
                        INSERT INTO schema_versions (version, name, checksum, applied_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (migration.version, migration.name, migration.checksum, applied_at),
                        operation=f"record migration {migration.version}",
                    )
                self._logger.info(
                    "node_db_migration_applied",
                    path=str(self._path),
                    version=migration.version,
                    migration=migration.name,
                )
                applied[migration.version] = MigrationRecord(
                    version=migration.version,
                    name=migration.name,
                    checksum=migration.checksum,
                    applied_at=applied_at,
                )

            return self.schema_version(conn=conn)

    def ensure_search_index(self) -> bool:
        """Create (or rebuild) the FTS5 index; return False when FTS5 is unavailable."""

        try:
            with self.transaction(immediate=True) as tx:
                for statement in _SEARCH_INDEX_STATEMENTS:
                    self._execute_with_retry(tx, statement, (), operation="build search index")
        except (NodeDBBusyError, NodeDBCorruptionError):
            raise
        except NodeDBError as exc:
            self._logger.warning(
                "node_db_fts_unavailable",
                path=str(self._path),
                error=str(exc),
            )
            return False
        return True

    def has_search_index(self, *, conn: sqlite3.Connection | None = None) -> bool:
        row = self.query_one(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (FTS_TABLE,),
            conn=conn,
        )
        return row is not None

    def schema_version(self, *, conn: sqlite3.Connection | None = None) -> int:
        row = self.query_one(
            "SELECT COALESCE(MAX(version), 0) AS version FROM schema_versions",
            conn=conn,
        )
        if row is None:
            return 0
        value = row["version"]
        if not isinstance(value, int):
            raise NodeDBMigrationError("schema_versions.version must be an integer")
        return value

    def schema_history(self) -> list[MigrationRecord]:
        with self.connection() as conn:
            return sorted(self._load_applied_migrations(conn).values(), key=lambda r: r.version)

    def execute(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """Execute a parameterized statement and return affected row count."""

        if conn is not None:
            cursor = self._execute_with_retry(conn, sql, params, operation="execute statement")
            return cursor.rowcount

        with self.transaction(immediate=True) as tx:
            cursor = self._execute_with_retry(tx, sql, params, operation="execute statement")
            return cursor.rowcount

    def executemany(
        self,
        sql: str,
        params_iter: Iterable[SQLParams],
        *,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """Execute a parameterized statement for a sequence of parameter tuples."""

        params_list = [tuple(params) for params in params_iter]
        if conn is not None:
            return self._executemany_with_retry(conn, sql, params_list, operation="execute many")

        with self.transaction(immediate=True) as tx:
            return self._executemany_with_retry(tx, sql, params_list, operation="execute many")

    def query_all(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, RowValue]]:
        """Run a query and return rows as typed dictionaries."""

        if conn is not None:
            cursor = self._execute_with_retry(conn, sql, params, operation="query all")
            return [_row_to_dict(row) for row in cursor.fetchall()]

        with self.connection() as owned_conn:
            cursor = self._execute_with_retry(owned_conn, sql, params, operation="query all")
            return [_row_to_dict(row) for row in cursor.fetchall()]

    def query_one(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, RowValue] | None:
        """Run a query and return the first row as a typed dictionary."""

        if conn is not None:
            cursor = self._execute_with_retry(conn, sql, params, operation="query one")
            row = cursor.fetchone()
            return None if row is None else _row_to_dict(row)

        with self.connection() as owned_conn:
            cursor = self._execute_with_retry(owned_conn, sql, params, operation="query one")
            row = cursor.fetchone()
            return None if row is None else _row_to_dict(row)

    def query_raw(self, sql: str, params: SQLParams = ()) -> list[dict[str, RowValue]]:
        """Run a query without error translation.

        Used by the indexed search strategy, which must see the raw ``sqlite3.Error``
        (for example an FTS5 syntax error) in order to fall back.
        """

        with self.connection() as conn:
            cursor = conn.execute(sql, tuple(params))
            return [_row_to_dict(row) for row in cursor.fetchall()]

    def backup(self, destination: str | Path) -> Path:
        """Create a consistent snapshot using SQLite backup API."""

        destination_path = Path(destination).expanduser()
        destination_path.parent.mkdir(parents=True, exist_ok=True)

        with (
            self.connection() as source,
            sqlite3.connect(
                destination_path,
                timeout=self._busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            ) as target,
        ):
            source.backup(target)
        return destination_path

    def integrity_check(self, *, max_errors: int = 100) -> tuple[str, ...]:
        """Return integrity-check errors; empty tuple means OK."""

        if max_errors <= 0:
            raise ValueError("max_errors must be > 0")
        rows = self.query_all(f"PRAGMA integrity_check({max_errors})")
        messages = tuple(str(row.get("integrity_check", "")) for row in rows)
        if messages == ("ok",):
            return ()
        return messages

    def __enter__(self) -> NodeDB:
        self.migrate()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb

    def _configure_connection(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
        journal_row = conn.execute("PRAGMA journal_mode=WAL").fetchone()
        if journal_row is None:
            raise NodeDBError("failed to configure journal_mode")
        journal_mode = str(journal_row[0]).lower()
        if journal_mode != "wal":
            raise NodeDBError(f"journal_mode must be WAL, got {journal_mode!r}")

    def _load_applied_migrations(self, conn: sqlite3.Connection) -> dict[int, MigrationRecord]:
        cursor = self._execute_with_retry(
            conn,
            """
            SELECT version, name, checksum, applied_at
            FROM schema_versions
            ORDER BY version ASC
            """,
            (),
            operation="load schema_versions",
        )
        out: dict[int, MigrationRecord] = {}
        for row in cursor.fetchall():
            if not isinstance(row["version"], int):
                raise NodeDBMigrationError("schema_versions.version must be integer")
            if not isinstance(row["name"], str):
                raise NodeDBMigrationError("schema_versions.name must be text")
            if not isinstance(row["checksum"], str):
                raise NodeDBMigrationError("schema_versions.checksum must be text")
            if not isinstance(row["applied_at"], str):
                raise NodeDBMigrationError("schema_versions.applied_at must be text")
            out[row["version"]] = MigrationRecord(
                version=row["version"],
                name=row["name"],
                checksum=row["checksum"],
                applied_at=row["applied_at"],
            )
        return out

    def _validate_migration_chain(self, target_version: int) -> None:
        if target_version < 0:
            raise NodeDBMigrationError("target schema version must be >= 0")
        migration_versions = {migration.version for migration in _MIGRATIONS}
        if target_version > max(migration_versions, default=0):
            raise NodeDBMigrationError(
                "schema target exceeds known migrations "
                f"(target={target_version}, known={max(migration_versions, default=0)})"
            )
        for version in range(1, target_version + 1):
            if version not in migration_versions:
                raise NodeDBMigrationError(f"missing migration for schema version {version}")

    def _next_savepoint_name(self) -> str:
        self._savepoint_counter += 1
        return f"sp_{self._savepoint_counter}"

    def _execute_with_retry(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: SQLParams,
        *,
        operation: str,
    ) -> sqlite3.Cursor:
        for attempt in range(self._busy_retry_limit + 1):
            try:
                return conn.execute(sql, tuple(params))
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                if self._is_busy_error(exc) and attempt < self._busy_retry_limit:
                    time.sleep((self._busy_retry_backoff_ms / 1000.0) * float(2**attempt))
                    continue
                self._raise_actionable_error(exc, operation=operation)
        raise NodeDBBusyError(f"{operation} exhausted retries unexpectedly")

    def _executemany_with_retry(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params_list: Sequence[SQLParams],
        *,
        operation: str,
    ) -> int:
        for attempt in range(self._busy_retry_limit + 1):
            try:
                cursor = conn.executemany(sql, params_list)
                return cursor.rowcount
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                if self._is_busy_error(exc) and attempt < self._busy_retry_limit:
                    time.sleep((self._busy_retry_backoff_ms / 1000.0) * float(2**attempt))
                    continue
                self._raise_actionable_error(exc, operation=operation)
        raise NodeDBBusyError(f"{operation} exhausted retries unexpectedly")

    def _is_busy_error(self, exc: sqlite3.Error) -> bool:
        code = getattr(exc, "sqlite_errorcode", None)
        if isinstance(code, int) and code in _SQLITE_BUSY_CODES:
            return True
        message = str(exc).lower()
        return any(fragment in message for fragment in _BUSY_SUBSTRINGS)

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        code = getattr(exc, "sqlite_errorcode", None)
        if isinstance(code, int) and code in _SQLITE_CORRUPTION_CODES:
            return True
        message = str(exc).lower()
        return any(fragment in message for fragment in _CORRUPTION_SUBSTRINGS)

    def _raise_actionable_error(self, exc: sqlite3.Error, *, operation: str) -> None:
        if self._is_corruption_error(exc):
            raise NodeDBCorruptionError(
                f"{operation} failed for {self._path}: {exc}. "
                "Run `nodekb doctor` and re-import the node catalog if needed."
            ) from exc
        if self._is_busy_error(exc):
            raise NodeDBBusyError(
                f"{operation} hit SQLITE_BUSY for {self._path} after "
                f"{self._busy_retry_limit + 1} attempt(s): {exc}"
            ) from exc
        raise NodeDBError(f"{operation} failed for {self._path}: {exc}") from exc


def _row_to_dict(row: sqlite3.Row) -> dict[str, RowValue]:
    raw = dict(row)
    return {str(key): raw[key] for key in raw}


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = [
    "DEFAULT_BUSY_RETRY_BACKOFF_MS",
    "DEFAULT_BUSY_RETRY_LIMIT",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "FTS_TABLE",
    "MigrationRecord",
    "NodeDB",
    "NodeDBBusyError",
    "NodeDBCorruptionError",
    "NodeDBError",
    "NodeDBMigrationError",
    "RowValue",
    "SQLParams",
    "SQLValue",
    "canonical_json",
]
