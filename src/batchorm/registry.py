"""Identity registry: which entities a unit of work knows and in what state.

Pure in-memory bookkeeping, no I/O. Entries are keyed by a local handle
assigned from a monotonically increasing counter the first time an entity's
identity token is seen; handles are never reused. Each entry keeps a shadow
copy of the entity's stored values as of its last load or successful write,
which is what dirty detection diffs against.

Entities removed from the unit of work leave the live map and wait in a
pending-removal set until a flush deletes them.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from batchorm.core.types import BatchDescriptor, TrackingState

if TYPE_CHECKING:
    from batchorm.model import Model


@dataclass
class RegistryEntry:
    """One tracked entity."""

    handle: int
    entity: Model
    state: TrackingState
    shadow: dict[str, Any] | None = None
    key: tuple[type, Any] | None = None


# Given an entry, return (table, ordered column -> value) or None to skip it
Extractor = Callable[[RegistryEntry], "tuple[str, Mapping[str, Any]] | None"]


class IdentityRegistry:
    """Identity map from entity to tracking state, owned by one unit of work."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._handles: dict[str, int] = {}
        self._entries: dict[int, RegistryEntry] = {}
        self._removed: dict[int, RegistryEntry] = {}
        # (model class, primary key) -> handles, live or pending removal
        self._keys: dict[tuple[type, Any], set[int]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entity: object) -> bool:
        return self._entry(entity) is not None

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries.values()))

    def put(self, entity: Model, state: TrackingState, snapshot: bool = False) -> RegistryEntry:
        """Insert or overwrite the tracked state of an entity.

        Args:
            entity: The entity to track
            state: Its new state
            snapshot: Refresh the shadow copy from the entity's current values
        """
        handle = self._handle_for(entity)
        self._removed.pop(handle, None)

        entry = self._entries.get(handle)
        if entry is None:
            entry = self._entries[handle] = RegistryEntry(handle, entity, state)
        else:
            entry.state = state

        if snapshot or (entry.shadow is None and state is not TrackingState.NEW):
            entry.shadow = entity.get_db_values()
        self._index(entry)
        return entry

    def drop(self, entity: Model) -> None:
        """Stop tracking an entity. Unknown entities are ignored."""
        handle = self._handles.get(entity.identity_token)
        entry = self._entries.pop(handle, None) if handle is not None else None
        if entry is not None:
            self._unindex(entry)

    def mark_removed(self, entity: Model) -> None:
        """Drop an entity and schedule its row for deletion on the next flush.

        Entities that were never stored (no primary key) are simply dropped.
        """
        handle = self._handles.get(entity.identity_token)
        entry = self._entries.pop(handle, None) if handle is not None else None
        if entity.id is None:
            if entry is not None:
                self._unindex(entry)
            return
        if entry is None:
            handle = self._handle_for(entity)
            entry = RegistryEntry(handle, entity, TrackingState.TRACKED)
        self._removed[entry.handle] = entry
        self._index(entry)

    def forget(self, entity: Model) -> None:
        """Deregister an entity completely, including any pending removal."""
        handle = self._handles.pop(entity.identity_token, None)
        if handle is None:
            return
        for source in (self._entries, self._removed):
            entry = source.pop(handle, None)
            if entry is not None:
                self._unindex(entry)

    def forget_key(self, model_cls: type, primary_key: Any) -> None:
        """Deregister every instance of a model that carries the given primary key."""
        for handle in list(self._keys.get((model_cls, primary_key), ())):
            entry = self._entries.get(handle) or self._removed.get(handle)
            if entry is not None:
                self.forget(entry.entity)

    def state_of(self, entity: Model) -> TrackingState | None:
        """Current state, or None when the entity is not tracked."""
        entry = self._entry(entity)
        return entry.state if entry is not None else None

    def is_pending_removal(self, entity: Model) -> bool:
        handle = self._handles.get(entity.identity_token)
        return handle is not None and handle in self._removed

    def shadow_of(self, entity: Model) -> dict[str, Any] | None:
        entry = self._entry(entity)
        return dict(entry.shadow) if entry is not None and entry.shadow is not None else None

    def refresh_shadow(self, entity: Model) -> None:
        """Take a new shadow copy of a tracked entity's current values."""
        entry = self._entry(entity)
        if entry is not None:
            entry.shadow = entity.get_db_values()

    def is_dirty(self, entry: RegistryEntry) -> bool:
        """Whether live stored values differ from the shadow copy, field by field."""
        if entry.shadow is None:
            return True
        live = entry.entity.get_db_values()
        shadow = entry.shadow
        return any(live.get(name) != shadow.get(name) for name in live.keys() | shadow.keys())

    def find_loaded(self, model_cls: type, primary_key: Any) -> Model | None:
        """Instance of a model with the given primary key, if this unit of work holds one.

        Entities pending removal count: reloading their row must not bring a
        second instance back into tracking.
        """
        if primary_key is None:
            return None
        for handle in sorted(self._keys.get((model_cls, primary_key), ())):
            entry = self._entries.get(handle) or self._removed.get(handle)
            # The id may have been reassigned since the entry was indexed
            if entry is not None and entry.entity.id == primary_key:
                return entry.entity
        return None

    def group_for_bulk_op(
        self, extractor: Extractor, removed: bool = False
    ) -> list[BatchDescriptor]:
        """Group eligible entities into batches of one bulk statement each.

        Entities share a batch when they map to the same table with the same
        column list, so two model classes on one table that declare different
        columns get a statement each.

        Args:
            extractor: Returns (table, ordered column -> value) for an entry, or
                None to skip it
            removed: Walk the pending-removal set instead of the live entries

        Returns:
            Batches ordered by their first entity, rows and entities in
            tracking order
        """
        source = self._removed if removed else self._entries
        groups: dict[tuple[str, tuple[str, ...]], BatchDescriptor] = {}

        for handle in sorted(source):
            entry = source[handle]
            extracted = extractor(entry)
            if extracted is None:
                continue
            table, values = extracted
            columns = tuple(values)

            batch = groups.get((table, columns))
            if batch is None:
                batch = groups[table, columns] = BatchDescriptor(table=table, columns=list(columns))
            batch.rows.append(tuple(values[column] for column in columns))
            batch.entities.append(entry.entity)

        return list(groups.values())

    def _index(self, entry: RegistryEntry) -> None:
        pk = entry.entity.id
        key = (type(entry.entity), pk) if pk is not None else None
        if key == entry.key:
            return
        self._unindex(entry)
        if key is not None:
            self._keys.setdefault(key, set()).add(entry.handle)
            entry.key = key

    def _unindex(self, entry: RegistryEntry) -> None:
        if entry.key is None:
            return
        handles = self._keys.get(entry.key)
        if handles is not None:
            handles.discard(entry.handle)
            if not handles:
                del self._keys[entry.key]
        entry.key = None

    def _handle_for(self, entity: Model) -> int:
        token = entity.identity_token
        handle = self._handles.get(token)
        if handle is None:
            handle = self._handles[token] = next(self._counter)
        return handle

    def _entry(self, entity: object) -> RegistryEntry | None:
        token = getattr(entity, "identity_token", None)
        handle = self._handles.get(token) if token is not None else None
        return self._entries.get(handle) if handle is not None else None
