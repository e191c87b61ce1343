"""
nodekb — persistence

File: src/nodekb/persistence/__init__.py

Purpose
- Persistence layer: node database access, migrations, repositories.

Functional requirements
- Must tolerate SQLite builds without FTS5.
"""

from nodekb.persistence.node_db import (
    NodeDB,
    NodeDBBusyError,
    NodeDBCorruptionError,
    NodeDBError,
    NodeDBMigrationError,
)
from nodekb.persistence.repositories import (
    IndexedRow,
    NodeNotFoundError,
    NodeRepo,
    NodeVersionRepo,
    TemplateExampleRepo,
)

__all__ = [
    "IndexedRow",
    "NodeDB",
    "NodeDBBusyError",
    "NodeDBCorruptionError",
    "NodeDBError",
    "NodeDBMigrationError",
    "NodeNotFoundError",
    "NodeRepo",
    "NodeVersionRepo",
    "TemplateExampleRepo",
]
