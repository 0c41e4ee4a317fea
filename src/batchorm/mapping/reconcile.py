"""Schema reconciliation: bring a live table in line with a declared one.

Given the full declared Table (the CREATE TABLE shape), the reconciler
creates the table when it is missing, otherwise adds missing columns and
modifies columns whose type family, length or nullability differ. Only the
delta is applied, so a second run with unchanged metadata issues nothing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    Integer,
    SmallInteger,
    String,
    Text,
)
from sqlalchemy.schema import CreateColumn, CreateTable

if TYPE_CHECKING:
    from sqlalchemy import Column, Table
    from sqlalchemy.engine import Dialect
    from sqlalchemy.types import TypeEngine

    from batchorm.core.executor import StatementExecutor

logger = logging.getLogger(__name__)

# Checked in order: subclasses before their bases
_TYPE_FAMILIES: tuple[tuple[type, str], ...] = (
    (BigInteger, "bigint"),
    (SmallInteger, "smallint"),
    (Integer, "integer"),
    (Float, "float"),
    (DateTime, "datetime"),
    (Text, "text"),
    (String, "string"),
)


def type_family(type_: TypeEngine[Any], dialect: Dialect) -> str:
    """Dialect-independent family of a column type ('string', 'float', ...)."""
    impl = type_.dialect_impl(dialect)
    for base, family in _TYPE_FAMILIES:
        if isinstance(impl, base):
            return family
    return type(impl).__name__.lower()


def column_signature(
    type_: TypeEngine[Any], nullable: bool, dialect: Dialect
) -> tuple[str, int | None, bool]:
    """What has to match between a declared and a live column."""
    family = type_family(type_, dialect)
    length = getattr(type_, "length", None) if family == "string" else None
    return family, length, bool(nullable)


class SchemaReconciler:
    """Diffs a declared table against the live database and applies the delta."""

    def __init__(self, executor: StatementExecutor) -> None:
        self._executor = executor

    @property
    def _dialect(self) -> Dialect:
        return self._executor.engine.dialect

    def apply(self, table: Table) -> list[str]:
        """Reconcile the live table with the declared one.

        Returns:
            One message per applied (or refused) change; empty if nothing changed
        """
        inspector = self._executor.inspector()
        if not inspector.has_table(table.name):
            self._executor.execute(CreateTable(table))
            logger.info(f"Created table {table.name}")
            return [f"Created table {table.name}"]

        live = {column["name"]: column for column in inspector.get_columns(table.name)}
        messages: list[str] = []

        for column in table.columns:
            if column.primary_key:
                continue
            current = live.get(column.name)
            if current is None:
                messages.append(self._add_column(table, column))
                continue

            declared = column_signature(column.type, column.nullable, self._dialect)
            existing = column_signature(current["type"], current["nullable"], self._dialect)
            if declared != existing:
                messages.append(self._modify_column(table, column, existing))

        return messages

    def _add_column(self, table: Table, column: Column[Any]) -> str:
        clause = str(CreateColumn(column).compile(dialect=self._dialect))
        note = ""
        if self._executor.dialect == "sqlite" and not column.nullable:
            # SQLite refuses ADD COLUMN ... NOT NULL without a default
            clause = clause.replace(" NOT NULL", "")
            note = " (as NULL: SQLite cannot add NOT NULL columns)"

        self._executor.execute(
            f"ALTER TABLE {self._executor.quote(table.name)} ADD COLUMN {clause}"
        )
        logger.info(f"Added column {table.name}.{column.name}{note}")
        return f"Added column {table.name}.{column.name}{note}"

    def _modify_column(
        self, table: Table, column: Column[Any], existing: tuple[str, int | None, bool]
    ) -> str:
        quoted_table = self._executor.quote(table.name)
        quoted_column = self._executor.quote(column.name)
        dialect = self._executor.dialect

        if dialect in ("mysql", "mariadb"):
            clause = CreateColumn(column).compile(dialect=self._dialect)
            self._executor.execute(f"ALTER TABLE {quoted_table} MODIFY COLUMN {clause}")
        elif dialect == "postgresql":
            type_sql = column.type.compile(dialect=self._dialect)
            null_sql = "DROP NOT NULL" if column.nullable else "SET NOT NULL"
            self._executor.execute(
                f"ALTER TABLE {quoted_table} "
                f"ALTER COLUMN {quoted_column} TYPE {type_sql} USING {quoted_column}::{type_sql}, "
                f"ALTER COLUMN {quoted_column} {null_sql}"
            )
        else:
            logger.warning(
                f"Cannot modify column {table.name}.{column.name} on {dialect}; "
                f"live definition {existing} left in place"
            )
            return f"Cannot modify column {table.name}.{column.name} on {dialect}"

        logger.info(f"Changed column {table.name}.{column.name}")
        return f"Changed column {table.name}.{column.name}"
