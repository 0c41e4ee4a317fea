"""batchorm - unit-of-work persistence with batched writes.

Models declare their table and columns; a unit of work tracks them and
writes every pending change with one statement per table per pass.

Example:
    from batchorm import Database, Field, Model

    class Widget(Model):
        __orm__ = {"type": "Entity", "table": "widgets", "allow_schema_update": True}

        name = Field("varchar", length=50, null="NOT NULL")
        price = Field("float")

    db = Database("sqlite:///:memory:")
    db.mapper().reconcile_schema(Widget)

    uow = db.unit_of_work()
    for name in ("bolt", "nut", "washer"):
        uow.persist(Widget(name=name, price=0.1))
    uow.flush()  # one INSERT with three rows

    bolt = uow.get_repository(Widget).find_by({"name": "bolt"})[0]
    bolt.price = 0.2
    uow.flush()  # one UPDATE for one row
"""

from batchorm.core.types import (
    ColumnSpec,
    ColumnType,
    EntityMetadata,
    FlushReport,
    IndexSpec,
    IndexType,
    PlaceholderKind,
    TableOutcome,
    TrackingState,
)
from batchorm.database import Database
from batchorm.exceptions import (
    BatchORMError,
    ConnectionError,
    FlushError,
    MissingRequiredMetadataError,
    PropertyNotFoundError,
    RepositoryTypeNotFoundError,
    SchemaUpdateNotPermittedError,
    StatementExecutionError,
    UnknownColumnTypeError,
    UnknownIndexTypeError,
)
from batchorm.fields import Field
from batchorm.manager import Manager
from batchorm.mapping import MetadataReader, SchemaMapper
from batchorm.model import Model, Resolved, Unresolved
from batchorm.registry import IdentityRegistry
from batchorm.repository import Repository

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "Database",
    "Manager",
    "SchemaMapper",
    "IdentityRegistry",
    "Repository",
    "Model",
    "Field",
    "MetadataReader",
    "Resolved",
    "Unresolved",
    # Types
    "ColumnType",
    "IndexType",
    "PlaceholderKind",
    "TrackingState",
    "ColumnSpec",
    "IndexSpec",
    "EntityMetadata",
    "FlushReport",
    "TableOutcome",
    # Exceptions
    "BatchORMError",
    "ConnectionError",
    "MissingRequiredMetadataError",
    "UnknownColumnTypeError",
    "UnknownIndexTypeError",
    "RepositoryTypeNotFoundError",
    "SchemaUpdateNotPermittedError",
    "PropertyNotFoundError",
    "StatementExecutionError",
    "FlushError",
]
