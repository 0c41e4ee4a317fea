"""Metadata derivation for batchorm models.

Reads the declarative settings of a model class (its __orm__ mapping and its
Field declarations), validates them, and turns them into an immutable
EntityMetadata. Results are cached for the lifetime of the process; each
model class is derived at most once per reader type even when several threads
ask at once.
"""

from __future__ import annotations

import importlib
import logging
import threading
from typing import Any

from batchorm.core.types import (
    ColumnSpec,
    ColumnType,
    EntityMetadata,
    IndexSpec,
    IndexType,
    RelationSpec,
)
from batchorm.exceptions import (
    MissingRequiredMetadataError,
    RepositoryTypeNotFoundError,
    UnknownColumnTypeError,
    UnknownIndexTypeError,
)
from batchorm.fields import Field

logger = logging.getLogger(__name__)

REQUIRED_ATTRIBUTES = ("type", "table", "allow_schema_update")

_TRUE_STRINGS = {"1", "true", "yes", "on"}

# (model class, reader type) -> metadata
_cache: dict[tuple[type, type], EntityMetadata] = {}
# model class -> its first derivation, whichever reader made it
_first: dict[type, EntityMetadata] = {}
_locks: dict[tuple[type, type], threading.Lock] = {}
_locks_guard = threading.Lock()


class MetadataReader:
    """Key/value lookup over a model's declarative settings."""

    def class_annotations(self, model_cls: type) -> dict[str, Any]:
        """Entity-level attributes from the model's __orm__ mapping."""
        return dict(getattr(model_cls, "__orm__", None) or {})

    def property_annotations(self, model_cls: type) -> dict[str, dict[str, Any]]:
        """Per-property settings, base classes first, in declaration order."""
        found: dict[str, dict[str, Any]] = {}
        for klass in reversed(model_cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, Field):
                    found[name] = value.annotations()
        return found


def import_string(path: str) -> Any:
    """Import 'package.module:Name' or 'package.module.Name'."""
    module_name, sep, attribute = path.partition(":")
    if not sep:
        module_name, _, attribute = path.rpartition(".")
    module = importlib.import_module(module_name)
    return getattr(module, attribute)


def parse_bool(value: Any) -> bool:
    """Boolean filter: true/yes/on/1 are true, anything else is false."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_STRINGS


def derive_metadata(model_cls: type, reader: MetadataReader | None = None) -> EntityMetadata:
    """Return the validated metadata for a model class, deriving it once per reader type.

    Without a reader, the default reader's result is used, or failing that
    whatever an explicit reader already derived for the class, so a model's
    own accessors agree with the mapper that first loaded it.

    Raises:
        MissingRequiredMetadataError: type, table or allow_schema_update missing
        UnknownColumnTypeError: a field's type is not a supported column type
        UnknownIndexTypeError: a field's index kind is not supported
        RepositoryTypeNotFoundError: the declared repository cannot be resolved
    """
    if reader is None:
        cached = _cache.get((model_cls, MetadataReader)) or _first.get(model_cls)
        reader = MetadataReader()
    else:
        cached = _cache.get((model_cls, type(reader)))
    if cached is not None:
        return cached

    key = (model_cls, type(reader))
    with _lock_for(key):
        cached = _cache.get(key)
        if cached is None:
            cached = _derive(model_cls, reader)
            _cache[key] = cached
            _first.setdefault(model_cls, cached)
            logger.debug(
                f"Derived metadata for {model_cls.__name__} with {type(reader).__name__} "
                f"-> table {cached.table}"
            )
        return cached


def clear_metadata_cache() -> None:
    """Forget every derived model (for tests and hot reloading)."""
    with _locks_guard:
        _cache.clear()
        _first.clear()
        _locks.clear()


def _lock_for(key: tuple[type, type]) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


def _derive(model_cls: type, reader: MetadataReader) -> EntityMetadata:
    model_name = model_cls.__name__
    attributes = reader.class_annotations(model_cls)

    for attribute in REQUIRED_ATTRIBUTES:
        if attributes.get(attribute) in (None, ""):
            raise MissingRequiredMetadataError(attribute, model_name)

    repository = None
    if attributes.get("repository"):
        repository = _resolve_repository(attributes["repository"], model_name)

    properties = reader.property_annotations(model_cls)
    columns: dict[str, ColumnSpec] = {}
    indexes: dict[str, IndexSpec] = {}
    relations: dict[str, RelationSpec] = {}

    for name, settings in properties.items():
        if settings.get("column_type"):
            columns[name] = _column_spec(name, settings, model_name)

        if settings.get("many_to_one") and settings.get("join_property"):
            relations[name] = RelationSpec(
                target=settings["many_to_one"], join_property=settings["join_property"]
            )

        if settings.get("index_type"):
            indexes[name] = _index_spec(name, settings, model_name)

    return EntityMetadata(
        entity_class=model_cls,
        entity_type=str(attributes["type"]),
        table=str(attributes["table"]),
        primary_key=str(attributes.get("primary_key") or "id"),
        allow_schema_update=parse_bool(attributes["allow_schema_update"]),
        repository=repository,
        columns=columns,
        indexes=indexes,
        relations=relations,
        properties=tuple(properties),
    )


def _column_spec(name: str, settings: dict[str, Any], model_name: str) -> ColumnSpec:
    column_type = str(settings["column_type"]).strip().lower()
    try:
        parsed = ColumnType(column_type)
    except ValueError as e:
        raise UnknownColumnTypeError(column_type, model_name, ColumnType.values()) from e

    length = settings.get("column_length")
    comment = str(settings.get("comment", "")).strip().replace("'", "").replace('"', "")

    return ColumnSpec(
        name=name,
        type=parsed,
        length=int(length) if length else None,
        null=settings.get("column_null") or None,
        comment=comment or None,
    )


def _index_spec(name: str, settings: dict[str, Any], model_name: str) -> IndexSpec:
    index_type = str(settings["index_type"]).strip().lower()
    try:
        kind = IndexType(index_type)
    except ValueError as e:
        raise UnknownIndexTypeError(index_type, model_name, IndexType.values()) from e

    declared = settings.get("index_columns") or name
    if isinstance(declared, str):
        columns = tuple(c.strip() for c in declared.split(",") if c.strip())
    else:
        columns = tuple(declared)

    index_name = settings.get("index_name") or "_".join(c.replace(" ", "") for c in columns)
    return IndexSpec(kind=kind, columns=columns, name=index_name)


def _resolve_repository(reference: Any, model_name: str) -> type:
    from batchorm.repository import Repository

    resolved = reference
    if isinstance(reference, str):
        try:
            resolved = import_string(reference)
        except (ImportError, AttributeError, ValueError) as e:
            raise RepositoryTypeNotFoundError(reference, model_name) from e

    if not (isinstance(resolved, type) and issubclass(resolved, Repository)):
        raise RepositoryTypeNotFoundError(
            str(reference), model_name, "It must be a subclass of batchorm.Repository."
        )
    return resolved
