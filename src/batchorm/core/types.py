"""Core types for batchorm.

Metadata types are immutable pydantic models derived once per model class.
Flush bookkeeping types are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ColumnType(StrEnum):
    """Supported column type keywords."""

    DATETIME = "datetime"
    TINYINT = "tinyint"
    SMALLINT = "smallint"
    INT = "int"
    BIGINT = "bigint"
    CHAR = "char"
    VARCHAR = "varchar"
    TINYTEXT = "tinytext"
    TEXT = "text"
    MEDIUMTEXT = "mediumtext"
    LONGTEXT = "longtext"
    FLOAT = "float"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid column type values."""
        return [t.value for t in cls]

    @property
    def placeholder(self) -> PlaceholderKind:
        """Parameter binding kind for values of this column type."""
        if self in _INTEGER_TYPES:
            return PlaceholderKind.INTEGER
        if self is ColumnType.FLOAT:
            return PlaceholderKind.FLOAT
        return PlaceholderKind.STRING


_INTEGER_TYPES = frozenset(
    {ColumnType.TINYINT, ColumnType.SMALLINT, ColumnType.INT, ColumnType.BIGINT}
)


class IndexType(StrEnum):
    """Supported index kinds."""

    INDEX = "index"
    UNIQUE = "unique"
    SPATIAL = "spatial"
    FULLTEXT = "fulltext"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid index type values."""
        return [t.value for t in cls]


class PlaceholderKind(StrEnum):
    """How a value is bound into a statement."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"

    def coerce(self, value: Any) -> Any:
        """Convert a Python value to the bound type. None stays None."""
        if value is None:
            return None
        if self is PlaceholderKind.INTEGER:
            return int(value)
        if self is PlaceholderKind.FLOAT:
            return float(value)
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, date):
            return value.isoformat()
        return str(value)


class TrackingState(StrEnum):
    """Lifecycle state of an entity inside a unit of work."""

    NEW = "new"  # persist()ed, to be INSERTed
    TRACKED = "tracked"  # known to exist in storage
    CLEAN = "clean"  # matches storage as of the last successful write


class ColumnSpec(BaseModel):
    """A mapped column derived from a field declaration."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: ColumnType
    length: int | None = None
    null: str | None = Field(default=None, description="Raw nullability clause, e.g. 'NOT NULL'")
    comment: str | None = None

    @property
    def placeholder(self) -> PlaceholderKind:
        return self.type.placeholder

    @property
    def nullable(self) -> bool:
        return " ".join((self.null or "").upper().split()) != "NOT NULL"

    @property
    def definition(self) -> str:
        """Column clause as it appears in a CREATE TABLE statement."""
        clause = f"{self.name} {self.type.value}"
        if self.length:
            clause += f"({self.length})"
        if self.null:
            clause += f" {self.null}"
        if self.comment:
            clause += f" COMMENT '{self.comment}'"
        return clause


class IndexSpec(BaseModel):
    """A mapped index derived from a field declaration."""

    model_config = ConfigDict(frozen=True)

    kind: IndexType
    columns: tuple[str, ...]
    name: str

    @property
    def definition(self) -> str:
        return f"ADD {self.kind.value} `{self.name}` ({', '.join(self.columns)})"


class RelationSpec(BaseModel):
    """A to-one relation: the field stores the join key of the target."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    target: Any = Field(..., description="Target model class or its import path")
    join_property: str


class EntityMetadata(BaseModel):
    """Validated mapping metadata for one model class."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    entity_class: type
    entity_type: str
    table: str
    primary_key: str = "id"
    allow_schema_update: bool
    repository: type | None = None
    columns: dict[str, ColumnSpec] = Field(default_factory=dict)
    indexes: dict[str, IndexSpec] = Field(default_factory=dict)
    relations: dict[str, RelationSpec] = Field(default_factory=dict)
    properties: tuple[str, ...] = ()

    @property
    def column_names(self) -> list[str]:
        return list(self.columns)

    @property
    def placeholders(self) -> dict[str, PlaceholderKind]:
        return {name: spec.placeholder for name, spec in self.columns.items()}


@dataclass
class BatchDescriptor:
    """Rows for one table, ready to become a single multi-row statement."""

    table: str
    columns: list[str]
    rows: list[tuple[Any, ...]] = field(default_factory=list)
    entities: list[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class TableOutcome:
    """Result of one pass over one table."""

    operation: str  # "update", "insert" or "delete"
    table: str
    entities: int
    affected_rows: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class FlushReport:
    """Everything a flush() did, table by table."""

    outcomes: list[TableOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[TableOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def statement_count(self) -> int:
        return len(self.outcomes)

    def count(self, operation: str) -> int:
        """Number of entities successfully handled by an operation."""
        return sum(o.entities for o in self.outcomes if o.operation == operation and o.success)
