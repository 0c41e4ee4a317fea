"""Schema Mapper: model metadata to tables, and tables to the live database."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    CHAR,
    BigInteger,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects import mysql

from batchorm.core.types import ColumnSpec, ColumnType, EntityMetadata, IndexSpec, IndexType
from batchorm.exceptions import SchemaUpdateNotPermittedError, StatementExecutionError
from batchorm.mapping.metadata import MetadataReader, derive_metadata
from batchorm.mapping.reconcile import SchemaReconciler

if TYPE_CHECKING:
    from sqlalchemy.types import TypeEngine

    from batchorm.core.executor import StatementExecutor

logger = logging.getLogger(__name__)

_MYSQL = ("mysql", "mariadb")

# Mapping from column type keywords to SQLAlchemy column types
COLUMN_TYPE_MAP: dict[ColumnType, Callable[[int | None], TypeEngine[Any]]] = {
    ColumnType.DATETIME: lambda length: DateTime(),
    ColumnType.TINYINT: lambda length: SmallInteger().with_variant(mysql.TINYINT(), *_MYSQL),
    ColumnType.SMALLINT: lambda length: SmallInteger(),
    ColumnType.INT: lambda length: Integer(),
    ColumnType.BIGINT: lambda length: BigInteger(),
    ColumnType.CHAR: lambda length: CHAR(length or 1),
    ColumnType.VARCHAR: lambda length: String(length or 255),
    ColumnType.TINYTEXT: lambda length: Text().with_variant(mysql.TINYTEXT(), *_MYSQL),
    ColumnType.TEXT: lambda length: Text(),
    ColumnType.MEDIUMTEXT: lambda length: Text().with_variant(mysql.MEDIUMTEXT(), *_MYSQL),
    ColumnType.LONGTEXT: lambda length: Text().with_variant(mysql.LONGTEXT(), *_MYSQL),
    ColumnType.FLOAT: lambda length: Float(),
}


def build_column(spec: ColumnSpec) -> Column[Any]:
    """SQLAlchemy column for a mapped column spec."""
    return Column(
        spec.name,
        COLUMN_TYPE_MAP[spec.type](spec.length),
        nullable=spec.nullable,
        comment=spec.comment,
    )


class SchemaMapper:
    """Derives model metadata and reconciles the database schema with it.

    One mapper belongs to one unit of work; the derived metadata it reads is
    shared process-wide.
    """

    def __init__(
        self,
        executor: StatementExecutor,
        table_prefix: str = "",
        reader: MetadataReader | None = None,
    ) -> None:
        """Initialize the mapper.

        Args:
            executor: Executes DDL against the database
            table_prefix: Prepended to every declared table name
            reader: Source of declarative metadata (defaults to __orm__ + Field)
        """
        self._executor = executor
        self._table_prefix = table_prefix
        self._reader = reader
        self._reconciler = SchemaReconciler(executor)
        self._tables: dict[type, Table] = {}

    @property
    def executor(self) -> StatementExecutor:
        return self._executor

    def derive_metadata(self, model_cls: type) -> EntityMetadata:
        """Validated, cached metadata for a model class."""
        return derive_metadata(model_cls, self._reader)

    def table_name(self, model_cls: type) -> str:
        """Prefixed table name for a model class."""
        return f"{self._table_prefix}{self.derive_metadata(model_cls).table}"

    def build_table(self, model_cls: type) -> Table:
        """SQLAlchemy Table for a model: auto-increment primary key plus every column."""
        table = self._tables.get(model_cls)
        if table is None:
            meta = self.derive_metadata(model_cls)
            # Own MetaData per model: two models may declare the same table
            table = Table(
                self.table_name(model_cls),
                MetaData(),
                Column(
                    meta.primary_key,
                    BigInteger().with_variant(Integer(), "sqlite"),
                    primary_key=True,
                    autoincrement=True,
                ),
                *(build_column(spec) for spec in meta.columns.values()),
            )
            self._tables[model_cls] = table
        return table

    def reconcile_schema(self, model_cls: type) -> list[str]:
        """Create the model's table or alter it to match the declared columns.

        Returns:
            Messages describing each applied change (empty when up to date)

        Raises:
            SchemaUpdateNotPermittedError: If allow_schema_update is False
        """
        meta = self.derive_metadata(model_cls)
        self._require_schema_update(meta, "update schema")
        messages = self._reconciler.apply(self.build_table(model_cls))
        if not messages:
            logger.debug(f"Schema for {model_cls.__name__} is up to date")
        return messages

    def reconcile_indexes(self, model_cls: type, reset_first: bool = False) -> list[str]:
        """Add the declared indexes, optionally dropping existing ones first.

        Args:
            model_cls: Model whose indexes to apply
            reset_first: Drop every non-primary index on the table before adding

        Returns:
            One human-readable message per step

        Raises:
            SchemaUpdateNotPermittedError: If allow_schema_update is False
        """
        meta = self.derive_metadata(model_cls)
        self._require_schema_update(meta, "update indexes")
        table_name = self.table_name(model_cls)
        messages: list[str] = []

        if reset_first:
            existing = [
                index["name"]
                for index in self._executor.inspector().get_indexes(table_name)
                if index.get("name")
            ]
            if not existing:
                messages.append("No indexes to drop")
            elif self._run_all(self._drop_index_statements(table_name, existing)):
                messages.append("Indexes were dropped")
            else:
                messages.append("Indexes could not be dropped")

        if not meta.indexes:
            messages.append("No indexes to update")
            return messages

        statements, skipped = self._add_index_statements(table_name, list(meta.indexes.values()))
        for index in skipped:
            messages.append(
                f"Index {index.name} skipped: {index.kind.value} indexes are not "
                f"supported on {self._executor.dialect}"
            )
        if not statements:
            return messages

        if self._run_all(statements):
            added = len(meta.indexes) - len(skipped)
            noun = "index was" if added == 1 else "indexes were"
            messages.append(f"{added} {noun} added to table {table_name}")
            logger.info(f"Added {added} index(es) to {table_name}")
        else:
            messages.append("Indexes could not be updated")
        return messages

    def truncate(self, model_cls: type) -> None:
        """Delete every row of the model's table.

        Raises:
            SchemaUpdateNotPermittedError: If allow_schema_update is False
        """
        meta = self.derive_metadata(model_cls)
        self._require_schema_update(meta, "truncate table")
        table = self._executor.quote(self.table_name(model_cls))
        if self._executor.dialect == "sqlite":
            self._executor.execute(f"DELETE FROM {table}")
        else:
            self._executor.execute(f"TRUNCATE TABLE {table}")
        logger.info(f"Truncated table {self.table_name(model_cls)}")

    def drop(self, model_cls: type) -> None:
        """Drop the model's table if it exists.

        Raises:
            SchemaUpdateNotPermittedError: If allow_schema_update is False
        """
        meta = self.derive_metadata(model_cls)
        self._require_schema_update(meta, "drop table")
        self._executor.execute(
            f"DROP TABLE IF EXISTS {self._executor.quote(self.table_name(model_cls))}"
        )
        logger.info(f"Dropped table {self.table_name(model_cls)}")

    def _require_schema_update(self, meta: EntityMetadata, operation: str) -> None:
        if not meta.allow_schema_update:
            raise SchemaUpdateNotPermittedError(operation, meta.entity_class.__name__)

    def _run_all(self, statements: list[str]) -> bool:
        try:
            for statement in statements:
                self._executor.execute(statement)
        except StatementExecutionError as e:
            logger.warning(f"Index statement failed: {e.last_error}")
            return False
        return True

    def _index_name(self, table_name: str, name: str) -> str:
        # Index names are schema-wide outside MySQL
        if self._executor.dialect in _MYSQL:
            return name
        return f"ix_{table_name}_{name}"

    def _drop_index_statements(self, table_name: str, names: list[str]) -> list[str]:
        quote = self._executor.quote
        dialect = self._executor.dialect
        if dialect in _MYSQL:
            drops = ",\n".join(f"DROP INDEX {quote(name)}" for name in names)
            return [f"ALTER TABLE {quote(table_name)} {drops}"]
        if dialect == "postgresql":
            return [f"DROP INDEX {', '.join(quote(name) for name in names)}"]
        return [f"DROP INDEX {quote(name)}" for name in names]

    def _add_index_statements(
        self, table_name: str, indexes: list[IndexSpec]
    ) -> tuple[list[str], list[IndexSpec]]:
        quote = self._executor.quote
        if self._executor.dialect in _MYSQL:
            clauses = ",\n".join(
                f"ADD {index.kind.value.upper()} {quote(index.name)} "
                f"({', '.join(quote(c) for c in index.columns)})"
                for index in indexes
            )
            return [f"ALTER TABLE {quote(table_name)} {clauses}"], []

        statements: list[str] = []
        skipped: list[IndexSpec] = []
        for index in indexes:
            if index.kind in (IndexType.SPATIAL, IndexType.FULLTEXT):
                skipped.append(index)
                continue
            unique = "UNIQUE " if index.kind is IndexType.UNIQUE else ""
            statements.append(
                f"CREATE {unique}INDEX {quote(self._index_name(table_name, index.name))} "
                f"ON {quote(table_name)} ({', '.join(quote(c) for c in index.columns)})"
            )
        return statements, skipped
