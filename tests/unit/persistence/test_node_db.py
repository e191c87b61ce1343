"""
nodekb — unit tests for the node database

File: tests/unit/persistence/test_node_db.py

Purpose
- Validate migrations, transaction semantics and maintenance helpers of ``NodeDB``.

What this test file should cover
- Migrations are idempotent and recorded with checksums.
- Databases written by a newer release, or with tampered migrations, are refused.
- Savepoint rollback inside an outer transaction.
- Search index creation and the raw query path used by the indexed strategy.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest

from nodekb.constants import NODE_DB_SCHEMA_VERSION
from nodekb.persistence.node_db import NodeDB, NodeDBMigrationError

from . import seeded_db

if TYPE_CHECKING:
    from pathlib import Path


def _tables(db: NodeDB) -> set[str]:
    rows = db.query_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {str(row["name"]) for row in rows}


def test_migrate_is_idempotent(tmp_path: Path) -> None:
    db = NodeDB(tmp_path / "data" / "nodes.db")

    assert db.migrate() == NODE_DB_SCHEMA_VERSION
    assert db.migrate() == NODE_DB_SCHEMA_VERSION

    history = db.schema_history()
    assert [record.version for record in history] == list(range(1, NODE_DB_SCHEMA_VERSION + 1))
    assert all(len(record.checksum) == 64 for record in history)
    assert {"nodes", "template_node_configs", "node_versions"} <= _tables(db)


def test_newer_schema_is_refused(tmp_path: Path) -> None:
    db = NodeDB(tmp_path / "nodes.db")
    db.migrate()
    db.execute(
        "INSERT INTO schema_versions (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
        (NODE_DB_SCHEMA_VERSION + 1, "future", "0" * 64, "2026-01-01T00:00:00Z"),
    )

    with pytest.raises(NodeDBMigrationError, match="newer than supported"):
        db.migrate()


def test_tampered_migration_checksum_is_refused(tmp_path: Path) -> None:
    db = NodeDB(tmp_path / "nodes.db")
    db.migrate()
    db.execute("UPDATE schema_versions SET checksum = ? WHERE version = 1", ("f" * 64,))

    with pytest.raises(NodeDBMigrationError, match="checksum mismatch"):
        db.migrate()


def test_nested_transaction_rolls_back_to_savepoint(tmp_path: Path) -> None:
    db = NodeDB(tmp_path / "nodes.db")
    db.migrate()
    db.execute("CREATE TABLE scratch (version TEXT NOT NULL)")
    insert = "INSERT INTO scratch (version) VALUES (?)"

    with db.transaction() as conn:
        conn.execute(insert, ("1",))
        with pytest.raises(RuntimeError):
            with db.transaction(conn=conn):
                conn.execute(insert, ("2",))
                raise RuntimeError("abort inner")

    rows = db.query_all("SELECT version FROM scratch ORDER BY version")
    assert [row["version"] for row in rows] == ["1"]


def test_rejects_negative_timeouts(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="busy_timeout_ms"):
        NodeDB(tmp_path / "nodes.db", busy_timeout_ms=-1)


def test_search_index_build_and_raw_query(tmp_path: Path) -> None:
    db = seeded_db(tmp_path / "nodes.db")
    assert db.has_search_index() is False

    if not db.ensure_search_index():
        pytest.skip("SQLite build lacks FTS5")

    assert db.has_search_index() is True
    assert db.ensure_search_index() is True
    rows = db.query_raw("SELECT COUNT(*) AS total FROM nodes_fts")
    assert rows == [{"total": 7}]
    with pytest.raises(sqlite3.OperationalError):
        db.query_raw("SELECT rowid FROM nodes_fts WHERE nodes_fts MATCH ?", ('"webhook',))


def test_backup_and_integrity_check(tmp_path: Path) -> None:
    db = seeded_db(tmp_path / "nodes.db")

    copy_path = db.backup(tmp_path / "backups" / "nodes.db")
    restored = NodeDB(copy_path)

    assert restored.migrate() == NODE_DB_SCHEMA_VERSION
    assert restored.query_one("SELECT COUNT(*) AS total FROM nodes") == {"total": 7}
    assert db.integrity_check() == ()
    with pytest.raises(ValueError):
        db.integrity_check(max_errors=0)
