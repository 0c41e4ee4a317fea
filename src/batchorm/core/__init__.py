"""Core components for batchorm."""

from batchorm.core.connection import DatabaseConnection
from batchorm.core.executor import StatementExecutor, StatementResult
from batchorm.core.types import (
    BatchDescriptor,
    ColumnSpec,
    ColumnType,
    EntityMetadata,
    FlushReport,
    IndexSpec,
    IndexType,
    PlaceholderKind,
    RelationSpec,
    TableOutcome,
    TrackingState,
)

__all__ = [
    "DatabaseConnection",
    "StatementExecutor",
    "StatementResult",
    "ColumnType",
    "IndexType",
    "PlaceholderKind",
    "TrackingState",
    "ColumnSpec",
    "IndexSpec",
    "RelationSpec",
    "EntityMetadata",
    "BatchDescriptor",
    "TableOutcome",
    "FlushReport",
]
