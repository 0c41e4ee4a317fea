"""Unit-of-Work Manager.

Accumulates create/update/delete intents in an identity registry and applies
them on flush() in three passes: updates, then inserts, then deletes. Each
pass issues one multi-row statement per table, however many entities are
involved. Tables are independent: a failed batch is reported and the other
tables still run. Nothing spans more than one statement.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from batchorm.core.types import (
    BatchDescriptor,
    EntityMetadata,
    FlushReport,
    PlaceholderKind,
    TableOutcome,
    TrackingState,
)
from batchorm.exceptions import FlushError, StatementExecutionError
from batchorm.registry import IdentityRegistry, RegistryEntry
from batchorm.repository import Repository

if TYPE_CHECKING:
    from collections.abc import Mapping

    from batchorm.core.executor import StatementExecutor, StatementResult
    from batchorm.mapping.mapper import SchemaMapper
    from batchorm.model import Model

logger = logging.getLogger(__name__)


class Manager:
    """One unit of work: tracks entities and flushes their changes in batches.

    A manager and its registry belong to a single request or job; create a
    new one per unit of work instead of sharing it.
    """

    def __init__(self, mapper: SchemaMapper) -> None:
        """Initialize the manager.

        Args:
            mapper: Schema mapper (and through it the executor) for this unit of work
        """
        self._mapper = mapper
        self._registry = IdentityRegistry()
        self._repositories: dict[type, Repository] = {}

    @property
    def mapper(self) -> SchemaMapper:
        return self._mapper

    @property
    def registry(self) -> IdentityRegistry:
        return self._registry

    @property
    def _executor(self) -> StatementExecutor:
        return self._mapper.executor

    def get_repository(self, model_cls: type[Model]) -> Repository:
        """Repository for a model class: its declared repository, or the base one."""
        repository = self._repositories.get(model_cls)
        if repository is None:
            meta = self._mapper.derive_metadata(model_cls)
            repository_cls = meta.repository or Repository
            repository = self._repositories[model_cls] = repository_cls(model_cls, meta, self)
        return repository

    def persist(self, entity: Model) -> None:
        """Queue an entity to be INSERTed on the next flush."""
        self._mapper.derive_metadata(type(entity))
        entity.bind(self)
        self._registry.put(entity, TrackingState.NEW)

    def track(self, entity: Model) -> None:
        """Start tracking an entity known to exist in the database."""
        self._mapper.derive_metadata(type(entity))
        entity.bind(self)
        self._registry.put(entity, TrackingState.TRACKED, snapshot=True)

    def clean(self, entity: Model) -> None:
        """Mark an entity as matching the database as of now."""
        self._mapper.derive_metadata(type(entity))
        entity.bind(self)
        self._registry.put(entity, TrackingState.CLEAN, snapshot=True)

    def remove(self, entity: Model) -> None:
        """Stop tracking an entity; its row is DELETEd on the next flush."""
        self._registry.mark_removed(entity)

    def state_of(self, entity: Model) -> TrackingState | None:
        return self._registry.state_of(entity)

    def flush(self) -> FlushReport:
        """Apply every pending change: updates, then inserts, then deletes.

        Returns:
            Per-table outcomes of the three passes

        Raises:
            FlushError: If any table's batch failed; the other batches were applied
        """
        report = FlushReport()

        self._run_pass(
            "update", self._registry.group_for_bulk_op(self._update_values), self._update, report
        )
        self._run_pass(
            "insert", self._registry.group_for_bulk_op(self._insert_values), self._insert, report
        )
        self._run_pass(
            "delete",
            self._registry.group_for_bulk_op(self._delete_values, removed=True),
            self._delete,
            report,
        )

        if report.outcomes:
            logger.info(
                f"Flushed {report.count('update')} update(s), {report.count('insert')} insert(s), "
                f"{report.count('delete')} delete(s) in {report.statement_count} statement(s)"
            )
        if report.failures:
            raise FlushError(report)
        return report

    def _run_pass(
        self,
        operation: str,
        batches: list[BatchDescriptor],
        apply: Callable[[BatchDescriptor, EntityMetadata], int],
        report: FlushReport,
    ) -> None:
        for batch in batches:
            outcome = TableOutcome(operation=operation, table=batch.table, entities=len(batch))
            meta = self._mapper.derive_metadata(type(batch.entities[0]))
            try:
                outcome.affected_rows = apply(batch, meta)
            except StatementExecutionError as e:
                outcome.error = e.message
                logger.error(
                    f"Failed to {operation} {len(batch)} record(s) in {batch.table}: "
                    f"{outcome.error}"
                )
            report.outcomes.append(outcome)

    # Extractors: which entities each pass picks up, and their raw values.
    # Values are bound per batch so a bad value fails only its own table.

    def _insert_values(self, entry: RegistryEntry) -> tuple[str, Mapping[str, Any]] | None:
        if entry.state is not TrackingState.NEW:
            return None
        model_cls = type(entry.entity)
        meta = self._mapper.derive_metadata(model_cls)
        return self._mapper.table_name(model_cls), self._raw_values(entry.entity, meta)

    def _update_values(self, entry: RegistryEntry) -> tuple[str, Mapping[str, Any]] | None:
        if entry.state is TrackingState.NEW or entry.entity.id is None:
            return None
        if not self._registry.is_dirty(entry):
            return None
        model_cls = type(entry.entity)
        meta = self._mapper.derive_metadata(model_cls)
        values = {meta.primary_key: entry.entity.id}
        values.update(self._raw_values(entry.entity, meta))
        return self._mapper.table_name(model_cls), values

    def _delete_values(self, entry: RegistryEntry) -> tuple[str, Mapping[str, Any]] | None:
        model_cls = type(entry.entity)
        meta = self._mapper.derive_metadata(model_cls)
        return self._mapper.table_name(model_cls), {meta.primary_key: entry.entity.id}

    def _raw_values(self, entity: Model, meta: EntityMetadata) -> dict[str, Any]:
        return {name: entity.get_db_value(name) for name in meta.columns}

    def _bind(self, batch: BatchDescriptor, meta: EntityMetadata) -> list[tuple[Any, ...]]:
        """Coerce a batch's rows to their placeholder kinds.

        Raises:
            StatementExecutionError: If a value cannot be converted
        """
        kinds = [
            PlaceholderKind.INTEGER if column == meta.primary_key
            else meta.columns[column].placeholder
            for column in batch.columns
        ]
        bound = []
        for row in batch.rows:
            values = []
            for column, kind, value in zip(batch.columns, kinds, row, strict=True):
                try:
                    values.append(kind.coerce(value))
                except (TypeError, ValueError) as e:
                    raise StatementExecutionError(
                        f"Cannot bind value for {batch.table}.{column}: {e}",
                        last_error=str(e),
                    ) from e
            bound.append(tuple(values))
        return bound

    # Statements

    def _values_clause(self, rows: list[tuple[Any, ...]]) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {}
        tuples = []
        for i, row in enumerate(rows):
            names = []
            for j, value in enumerate(row):
                params[f"r{i}_{j}"] = value
                names.append(f":r{i}_{j}")
            tuples.append(f"({', '.join(names)})")
        return ",\n  ".join(tuples), params

    def _insert(self, batch: BatchDescriptor, meta: EntityMetadata) -> int:
        quote = self._executor.quote
        values, params = self._values_clause(self._bind(batch, meta))
        sql = (
            f"INSERT INTO {quote(batch.table)} ({', '.join(quote(c) for c in batch.columns)})\n"
            f"VALUES\n  {values}"
        )
        returning = self._executor.engine.dialect.insert_returning
        if returning:
            sql += f"\nRETURNING {quote(meta.primary_key)}"

        result = self._executor.execute(sql, params)
        self._require_rows(result, f"Failed to insert {len(batch)} record(s) into {batch.table}")

        if returning:
            # RETURNING order is unspecified; auto-increment ids follow VALUES order
            ids = sorted(row[0] for row in result.rows)
        else:
            ids = self._ids_from_lastrowid(result.lastrowid, len(batch))
        for entity, new_id in zip(batch.entities, ids, strict=False):
            entity.id = new_id
        if len(ids) != len(batch):
            logger.warning(
                f"Inserted {len(batch)} record(s) into {batch.table} "
                f"but could only assign {len(ids)} primary key(s)"
            )

        for entity in batch.entities:
            self.clean(entity)
        return result.rowcount

    def _update(self, batch: BatchDescriptor, meta: EntityMetadata) -> int:
        quote = self._executor.quote
        values, params = self._values_clause(self._bind(batch, meta))
        assignments = [c for c in batch.columns if c != meta.primary_key]
        sql = (
            f"INSERT INTO {quote(batch.table)} ({', '.join(quote(c) for c in batch.columns)})\n"
            f"VALUES\n  {values}\n"
        )
        if self._executor.dialect in ("mysql", "mariadb"):
            sql += "ON DUPLICATE KEY UPDATE " + ", ".join(
                f"{quote(c)} = VALUES({quote(c)})" for c in assignments
            )
        else:
            sql += f"ON CONFLICT ({quote(meta.primary_key)}) DO UPDATE SET " + ", ".join(
                f"{quote(c)} = excluded.{quote(c)}" for c in assignments
            )

        result = self._executor.execute(sql, params)
        self._require_rows(result, f"Failed to update {len(batch)} record(s) in {batch.table}")

        for entity in batch.entities:
            self.clean(entity)
        return result.rowcount

    def _delete(self, batch: BatchDescriptor, meta: EntityMetadata) -> int:
        quote = self._executor.quote
        params = {f"k{i}": row[0] for i, row in enumerate(self._bind(batch, meta))}
        placeholders = ", ".join(f":{name}" for name in params)
        sql = (
            f"DELETE FROM {quote(batch.table)} "
            f"WHERE {quote(meta.primary_key)} IN ({placeholders})"
        )

        result = self._executor.execute(sql, params)
        if result.rowcount == 0:
            logger.warning(
                f"No rows matched when deleting {len(batch)} record(s) from {batch.table}"
            )

        for entity in batch.entities:
            pk = entity.id
            self._registry.forget(entity)
            # Other instances loaded for the same row must not upsert it back
            self._registry.forget_key(type(entity), pk)
        return result.rowcount

    def _require_rows(self, result: StatementResult, message: str) -> None:
        if result.rowcount == 0:
            raise StatementExecutionError(
                message,
                statement=self._executor.last_statement,
                last_error="no rows affected",
            )

    def _ids_from_lastrowid(self, lastrowid: int | None, count: int) -> list[int]:
        if not lastrowid:
            return []
        # MySQL reports the first id of a multi-row insert, SQLite the last
        if self._executor.dialect in ("mysql", "mariadb"):
            first = lastrowid
        else:
            first = lastrowid - count + 1
        return list(range(first, first + count))
