"""Read access to stored entities.

Queries are SQLAlchemy Core selects against the model's mapped table. Every
row comes back through the "just loaded" path: bound to the unit of work and
tracked as TRACKED, or replaced by the instance already tracked for that
primary key.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, Table, select

from batchorm.exceptions import PropertyNotFoundError

if TYPE_CHECKING:
    from batchorm.core.types import EntityMetadata
    from batchorm.manager import Manager
    from batchorm.model import Model


class Repository:
    """Finds entities of one model class.

    Subclass it to add model-specific queries and declare the subclass in
    the model's __orm__ mapping under "repository".
    """

    def __init__(self, model_cls: type[Model], metadata: EntityMetadata, manager: Manager) -> None:
        self._model_cls = model_cls
        self._metadata = metadata
        self._manager = manager

    @property
    def model_class(self) -> type[Model]:
        return self._model_cls

    @property
    def table(self) -> Table:
        return self._manager.mapper.build_table(self._model_cls)

    @property
    def properties(self) -> list[str]:
        """Primary key followed by every mapped column."""
        return [self._metadata.primary_key, *self._metadata.columns]

    def create_query(self) -> Select[Any]:
        """Select over the model's table, for building custom queries."""
        return select(self.table)

    def find(self, id: Any) -> Model | None:
        """Entity with the given primary key, or None."""
        results = self.find_by({self._metadata.primary_key: id})
        return results[0] if results else None

    def find_all(self) -> list[Model]:
        """Every stored entity, by primary key ascending."""
        return self.fetch(self._ordered(self.create_query()))

    def find_by(self, criteria: Mapping[str, Any]) -> list[Model]:
        """Entities whose properties equal every given value.

        Raises:
            PropertyNotFoundError: If a criterion names an unmapped property
        """
        table = self.table
        query = self.create_query()
        for name, value in criteria.items():
            if name not in table.c:
                raise PropertyNotFoundError(name, self._model_cls.__name__, self.properties)
            if hasattr(value, "identity_token"):
                value = value.id
            query = query.where(table.c[name] == value)
        return self.fetch(self._ordered(query))

    def fetch(self, query: Select[Any]) -> list[Model]:
        """Run a select over the model table and hydrate its rows."""
        result = self._manager.mapper.executor.execute(query)
        return [self._hydrate(dict(row._mapping)) for row in result.rows]

    def _ordered(self, query: Select[Any]) -> Select[Any]:
        return query.order_by(self.table.c[self._metadata.primary_key].asc())

    def _hydrate(self, row: dict[str, Any]) -> Model:
        existing = self._manager.registry.find_loaded(
            self._model_cls, row.get(self._metadata.primary_key)
        )
        if existing is not None:
            return existing
        entity = self._model_cls.from_row(row, self._manager)
        self._manager.track(entity)
        return entity
