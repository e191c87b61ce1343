"""Stable constants shared across the knowledge base layers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
NODE_DB_SCHEMA_VERSION: Final[int] = 2

# Default runtime paths (relative to the working directory unless overridden by config).
DEFAULT_DB_PATH: Final[PurePosixPath] = PurePosixPath("data/nodes.db")
DEFAULT_LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")

# Package identifiers as stored in the database and as used inside workflows.
CORE_PACKAGE: Final[str] = "n8n-nodes-base"
LANGCHAIN_PACKAGE: Final[str] = "@n8n/n8n-nodes-langchain"
CORE_SHORT_PREFIX: Final[str] = "nodes-base."
LANGCHAIN_SHORT_PREFIX: Final[str] = "nodes-langchain."
CORE_WORKFLOW_PREFIX: Final[str] = "n8n-nodes-base."
LANGCHAIN_WORKFLOW_PREFIX: Final[str] = "@n8n/n8n-nodes-langchain."

# Node types with dedicated ranking and validation treatment.
HTTP_REQUEST_NODE_TYPE: Final[str] = "nodes-base.httpRequest"
WEBHOOK_NODE_TYPE: Final[str] = "nodes-base.webhook"
CODE_NODE_TYPE: Final[str] = "nodes-base.code"

# Synthetic configuration key carrying the node's type version during validation.
VERSION_CONFIG_KEY: Final[str] = "@version"

__all__ = [
    "CODE_NODE_TYPE",
    "CONFIG_SCHEMA_VERSION",
    "CORE_PACKAGE",
    "CORE_SHORT_PREFIX",
    "CORE_WORKFLOW_PREFIX",
    "DEFAULT_DB_PATH",
    "DEFAULT_LOG_DIR",
    "HTTP_REQUEST_NODE_TYPE",
    "LANGCHAIN_PACKAGE",
    "LANGCHAIN_SHORT_PREFIX",
    "LANGCHAIN_WORKFLOW_PREFIX",
    "NODE_DB_SCHEMA_VERSION",
    "VERSION_CONFIG_KEY",
    "WEBHOOK_NODE_TYPE",
]
