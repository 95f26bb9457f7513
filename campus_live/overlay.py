"""Overlay of pending edits on top of a server snapshot.

An :class:`Overlay` belongs to one bulk-edit screen. It keeps the last values
fetched from the server untouched and records the operator's edits as
overrides next to them. Readers always see the effective value (override
first, then server value). Every mutation re-runs the registered live
aggregates so the screen can preview statistics before anything is saved.

Only valid overrides make it into :meth:`Overlay.diff`; invalid ones stay in
the overlay, are reported by :meth:`Overlay.invalid_entries`, and are never
coerced into something the server would accept.
"""

from __future__ import annotations

import copy
import itertools
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
)

from .models import CommitRecord, EditableEntity
from .validation import Validator

logger = logging.getLogger(__name__)

V = TypeVar("V")
A = TypeVar("A")

Reducer = Callable[[Mapping[Hashable, Optional[V]]], A]


class Overlay(Generic[V]):
    """Dirty-tracking layer over a ``{id: server_value}`` snapshot."""

    def __init__(
        self,
        server_values: Optional[Mapping[Hashable, Optional[V]]] = None,
        validator: Optional[Validator] = None,
    ) -> None:
        self._entries: Dict[Hashable, EditableEntity] = {}
        self._validator = validator
        self._watchers: Dict[int, Tuple[Callable[[Mapping[Hashable, Optional[V]]], Any], Callable[[Any], None]]] = {}
        self._watch_ids = itertools.count()
        if server_values:
            self._replace_snapshot(server_values)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Any],
        key: Callable[[Any], Hashable],
        value: Callable[[Any], Optional[V]],
        validator: Optional[Validator] = None,
    ) -> "Overlay[V]":
        """Build an overlay from fetched records using accessor functions."""
        return cls({key(r): value(r) for r in records}, validator=validator)

    # Snapshot

    def load(self, server_values: Mapping[Hashable, Optional[V]]) -> None:
        """Replace the server snapshot wholesale, keeping pending overrides."""
        self._replace_snapshot(server_values)
        self._notify()

    def _replace_snapshot(self, server_values: Mapping[Hashable, Optional[V]]) -> None:
        entries: Dict[Hashable, EditableEntity] = {}
        for entity_id, server_value in server_values.items():
            previous = self._entries.get(entity_id)
            entries[entity_id] = EditableEntity(
                id=entity_id,
                server_value=server_value,
                override=previous.override if previous is not None else None,
            )
        for entity_id, previous in self._entries.items():
            if entity_id not in entries and previous.override is not None:
                entries[entity_id] = EditableEntity(id=entity_id, override=previous.override)
        self._entries = entries

    def server_values(self) -> Dict[Hashable, Optional[V]]:
        return {entity_id: e.server_value for entity_id, e in self._entries.items()}

    # Reads

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def ids(self) -> List[Hashable]:
        return list(self._entries)

    def entity(self, entity_id: Hashable) -> Optional[EditableEntity]:
        """Return a copy of the entity, or None if the id is unknown."""
        entry = self._entries.get(entity_id)
        return entry.model_copy() if entry is not None else None

    def entities(self) -> List[EditableEntity]:
        return [e.model_copy() for e in self._entries.values()]

    def get_effective(self, entity_id: Hashable) -> Optional[V]:
        """Override if present, else the server value, else None (unset)."""
        entry = self._entries.get(entity_id)
        if entry is None:
            return None
        if entry.override is not None:
            return entry.override
        return entry.server_value

    def effective_values(self) -> Dict[Hashable, Optional[V]]:
        return {entity_id: self.get_effective(entity_id) for entity_id in self._entries}

    @property
    def dirty(self) -> bool:
        return any(e.override is not None for e in self._entries.values())

    def dirty_ids(self) -> List[Hashable]:
        return [entity_id for entity_id, e in self._entries.items() if e.override is not None]

    # Mutations

    def set_override(self, entity_id: Hashable, value: V) -> None:
        """Record an edit. Unknown ids get an entity with no server value."""
        self._set(entity_id, value)
        self._notify()

    def _set(self, entity_id: Hashable, value: V) -> None:
        if value is None:
            raise ValueError("an override cannot be None; use clear_override()")
        entry = self._entries.get(entity_id)
        if entry is None:
            entry = self._entries[entity_id] = EditableEntity(id=entity_id)
        entry.override = value

    def clear_override(self, entity_id: Hashable) -> None:
        entry = self._entries.get(entity_id)
        if entry is None or entry.override is None:
            return
        entry.override = None
        self._notify()

    def bulk_set_override(
        self,
        value: V,
        predicate: Optional[Callable[[EditableEntity], bool]] = None,
    ) -> int:
        """Override every entity matching ``predicate`` (all when None) in one step.

        Returns the number of entities changed. Watchers see a single update.
        """
        targets = [
            entity_id
            for entity_id, e in self._entries.items()
            if predicate is None or predicate(e.model_copy())
        ]
        for entity_id in targets:
            self._set(entity_id, value)
        if targets:
            self._notify()
        return len(targets)

    def reset(self) -> None:
        """Drop every override; effective values fall back to the snapshot."""
        for entry in self._entries.values():
            entry.override = None
        self._notify()

    # Live aggregates

    def compute_live_aggregate(self, reducer: Reducer) -> Any:
        """Run ``reducer`` over the effective value of every entity."""
        return reducer(self.effective_values())

    def watch(self, reducer: Reducer, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Recompute ``reducer`` after every mutation and pass the result to ``callback``.

        The aggregate is delivered once immediately. Returns an unwatch function.
        """
        token = next(self._watch_ids)
        self._watchers[token] = (reducer, callback)
        callback(self.compute_live_aggregate(reducer))

        def unwatch() -> None:
            self._watchers.pop(token, None)

        return unwatch

    def _notify(self) -> None:
        if not self._watchers:
            return
        values = self.effective_values()
        for reducer, callback in list(self._watchers.values()):
            try:
                callback(reducer(values))
            except Exception as exc:
                logger.error("Error recomputing live aggregate: %s", exc, exc_info=True)

    # Validation and diff

    def validate(self, entity_id: Hashable) -> Optional[str]:
        """Reason the entity's override is invalid, or None when it is fine or absent."""
        entry = self._entries.get(entity_id)
        if entry is None or entry.override is None or self._validator is None:
            return None
        return self._validator(entry.override)

    def invalid_entries(self) -> Dict[Hashable, str]:
        invalid: Dict[Hashable, str] = {}
        for entity_id in self.dirty_ids():
            reason = self.validate(entity_id)
            if reason is not None:
                invalid[entity_id] = reason
        return invalid

    def diff(self) -> List[CommitRecord]:
        """Every valid override as an ``{id, value}`` record, in entity order.

        Values are deep-copied so later edits cannot reach a payload that has
        already been handed to a request.
        """
        records = []
        for entity_id in self.dirty_ids():
            reason = self.validate(entity_id)
            if reason is not None:
                logger.debug("Leaving %r out of the diff: %s", entity_id, reason)
                continue
            records.append(CommitRecord(id=entity_id, value=copy.deepcopy(self._entries[entity_id].override)))
        return records

    def apply_commit(self, records: Iterable[CommitRecord]) -> None:
        """Fold committed records into the snapshot after a successful commit.

        The committed value becomes the server value. The override is cleared
        only if it still equals what was sent, so edits made while the request
        was in flight stay pending.
        """
        for record in records:
            entry = self._entries.get(record.id)
            if entry is None:
                entry = self._entries[record.id] = EditableEntity(id=record.id)
            entry.server_value = record.value
            if entry.override == record.value:
                entry.override = None
        self._notify()
