"""Base class for mapped entities.

A model instance is a mutable record of declared properties plus a primary
key (None until persisted) and an identity token minted at construction.
The token keys the instance in a unit of work's registry and is never used
to compare business data.

Relation properties hold either Unresolved(key) or Resolved(entity). Reading
an unresolved relation on an instance bound to a unit of work looks the
target up once through its repository; a miss leaves the key in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar
from uuid import uuid4

from batchorm.exceptions import PropertyNotFoundError
from batchorm.mapping.metadata import derive_metadata, import_string

if TYPE_CHECKING:
    from batchorm.core.types import EntityMetadata
    from batchorm.manager import Manager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unresolved:
    """Relation still holding the raw join key."""

    key: Any


@dataclass(frozen=True)
class Resolved:
    """Relation holding the related entity."""

    entity: Model


class Model:
    """Base class for mapped entities.

    Subclasses declare an __orm__ mapping and Field attributes:

        class Widget(Model):
            __orm__ = {"type": "Entity", "table": "widgets", "allow_schema_update": True}

            name = Field("varchar", length=50, null="NOT NULL")
            price = Field("float")
    """

    __orm__: ClassVar[dict[str, Any]] = {}

    def __init__(self, **values: Any) -> None:
        self._token = uuid4().hex
        self._id: Any = None
        self._values: dict[str, Any] = {}
        self._manager: Manager | None = None
        for name, value in values.items():
            self.set(name, value)

    @classmethod
    def metadata(cls) -> EntityMetadata:
        return derive_metadata(cls)

    @classmethod
    def from_row(cls, row: dict[str, Any], manager: Manager | None = None) -> Model:
        """Build an instance from a stored row (the "just loaded" path)."""
        meta = cls.metadata()
        instance = cls()
        instance._id = row.get(meta.primary_key)
        for name in meta.columns:
            if name in row:
                instance._store(name, row[name], meta)
        instance._manager = manager
        return instance

    @property
    def identity_token(self) -> str:
        return self._token

    @property
    def primary_key_name(self) -> str:
        return self.metadata().primary_key

    @property
    def id(self) -> Any:
        return self._id

    @id.setter
    def id(self, value: Any) -> None:
        self._id = value

    @property
    def manager(self) -> Manager | None:
        return self._manager

    def bind(self, manager: Manager) -> None:
        """Attach this instance to a unit of work for lazy relation lookups."""
        self._manager = manager

    def get(self, name: str) -> Any:
        """Generic getter; resolves to-one relations on first read.

        Raises:
            PropertyNotFoundError: If the property is not declared
        """
        meta = self.metadata()
        if name == meta.primary_key:
            return self._id
        self._require(name, meta)

        if name in meta.relations:
            self.resolve(name)
            value = self._values.get(name)
            if isinstance(value, Resolved):
                return value.entity
            if isinstance(value, Unresolved):
                return value.key
            return None

        return self._values.get(name)

    def set(self, name: str, value: Any) -> None:
        """Generic setter. Plain replacement, nothing cascades.

        Raises:
            PropertyNotFoundError: If the property is not declared
        """
        meta = self.metadata()
        if name == meta.primary_key:
            self._id = value
            return
        self._require(name, meta)
        self._store(name, value, meta)

    def get_multiple(self, names: list[str]) -> dict[str, Any]:
        return {name: self.get(name) for name in names}

    def get_all_values(self) -> dict[str, Any]:
        """Values of every mapped column, without the primary key."""
        return {name: self.get(name) for name in self.metadata().columns}

    def get_db_value(self, name: str) -> Any:
        """Stored value of a property without triggering a relation lookup.

        A resolved relation yields the related entity's join key.
        """
        meta = self.metadata()
        if name == meta.primary_key:
            return self._id
        self._require(name, meta)

        value = self._values.get(name)
        if isinstance(value, Unresolved):
            return value.key
        if isinstance(value, Resolved):
            return value.entity.get_db_value(meta.relations[name].join_property)
        return value

    def get_db_values(self) -> dict[str, Any]:
        """Column name to stored value, as it would be written."""
        return {name: self.get_db_value(name) for name in self.metadata().columns}

    def is_resolved(self, name: str) -> bool:
        return isinstance(self._values.get(name), Resolved)

    def resolve(self, name: str) -> bool:
        """Resolve a to-one relation through the bound unit of work.

        Idempotent: a resolved relation is returned from the instance without
        another lookup. Returns True when the relation holds an entity.
        """
        meta = self.metadata()
        relation = meta.relations.get(name)
        if relation is None:
            self._require(name, meta)
            return False

        value = self._values.get(name)
        if isinstance(value, Resolved):
            return True
        if not isinstance(value, Unresolved) or value.key is None or self._manager is None:
            return False

        target = relation.target
        if isinstance(target, str):
            target = import_string(target)

        matches = self._manager.get_repository(target).find_by(
            {relation.join_property: value.key}
        )
        if not matches:
            logger.debug(f"{type(self).__name__}.{name}: no {target.__name__} for {value.key!r}")
            return False

        self._values[name] = Resolved(matches[0])
        return True

    def copy(self) -> Model:
        """New unsaved instance with the same property values."""
        clone = type(self)()
        for name, value in self._values.items():
            clone._values[name] = value
        return clone

    def _store(self, name: str, value: Any, meta: EntityMetadata) -> None:
        if name in meta.relations and not isinstance(value, Unresolved | Resolved):
            value = Resolved(value) if isinstance(value, Model) else Unresolved(value)
        self._values[name] = value

    def _require(self, name: str, meta: EntityMetadata) -> None:
        if name not in meta.properties:
            raise PropertyNotFoundError(name, type(self).__name__, list(meta.properties))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.primary_key_name}={self._id!r}>"
