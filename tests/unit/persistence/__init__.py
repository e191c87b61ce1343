"""Shared fixtures and builders for persistence tests."""

from __future__ import annotations

from pathlib import Path
from typing import Final

from nodekb.domain.models import NodeRecord
from nodekb.persistence.node_db import NodeDB
from nodekb.persistence.repositories import NodeRepo, NodeVersionRepo, TemplateExampleRepo
from nodekb.service import load_import_file

FIXTURE_PATH: Final[Path] = Path(__file__).resolve().parents[2] / "fixtures" / "nodes.json"


def make_record(node_type: str, display_name: str, **fields: object) -> NodeRecord:
    data: dict[str, object] = {"nodeType": node_type, "displayName": display_name}
    data.update(fields)
    return NodeRecord.from_dict(data)


def seeded_db(path: Path) -> NodeDB:
    """A migrated database loaded with every section of the shared fixture file."""

    db = NodeDB(path)
    nodes, examples, versions = load_import_file(FIXTURE_PATH)
    NodeRepo(db).upsert_many(nodes)
    TemplateExampleRepo(db).upsert_many(examples)
    NodeVersionRepo(db).upsert_many(versions)
    return db


__all__ = ["FIXTURE_PATH", "make_record", "seeded_db"]
