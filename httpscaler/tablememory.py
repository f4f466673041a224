"""Immutable routing memory: targets by name and by longest-prefix key."""

from __future__ import annotations

import copy
from typing import Dict, Optional

from httpscaler.k8s import NamespacedName, namespaced_name_from_object
from httpscaler.key import Key, RouteTarget, new_keys_from_target


class TableMemory:
    """A snapshot of route targets; every change returns a new snapshot."""

    def __init__(self) -> None:
        self._index: Dict[str, RouteTarget] = {}
        self._store: Dict[Key, RouteTarget] = {}

    @classmethod
    def _build(cls, index: Dict[str, RouteTarget], store: Dict[Key, RouteTarget]) -> "TableMemory":
        memory = cls()
        memory._index = index
        memory._store = store
        return memory

    def remember(self, target: Optional[RouteTarget]) -> "TableMemory":
        """A snapshot that also holds a copy of ``target``.

        Where two targets share a key, the one created earlier keeps it.
        """
        if target is None:
            return self
        target = copy.deepcopy(target)
        index = dict(self._index)
        index[str(namespaced_name_from_object(target))] = target
        store = dict(self._store)
        for key in new_keys_from_target(target):
            old = store.get(key)
            if old is not None and target.creation_timestamp > old.creation_timestamp:
                continue
            store[key] = target
        return TableMemory._build(index, store)

    def recall(self, namespaced_name: Optional[NamespacedName]) -> Optional[RouteTarget]:
        """A copy of the target with this name, or None."""
        if namespaced_name is None:
            return None
        target = self._index.get(str(namespaced_name))
        if target is None:
            return None
        return copy.deepcopy(target)

    def forget(self, namespaced_name: Optional[NamespacedName]) -> "TableMemory":
        """A snapshot without the named target; keys held by others are kept."""
        if namespaced_name is None:
            return self
        index = dict(self._index)
        target = index.pop(str(namespaced_name), None)
        if target is None:
            return self
        store = dict(self._store)
        for key in new_keys_from_target(target):
            holder = store.get(key)
            if holder is not None and namespaced_name_from_object(holder) == namespaced_name:
                del store[key]
        return TableMemory._build(index, store)

    def route(self, key: Optional[Key]) -> Optional[RouteTarget]:
        """The target whose key is the longest prefix of ``key``, or None."""
        key = key or ""
        for end in range(len(key), -1, -1):
            target = self._store.get(key[:end])
            if target is not None:
                return target
        return None