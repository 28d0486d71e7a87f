"""Process-wide collection registry."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from types import MappingProxyType

from switchyard.dal.collection import Collection

logger = logging.getLogger(__name__)


class CollectionRegistry:
    """Collections keyed by name.

    Reads go to an immutable snapshot and take no lock; writers copy the snapshot,
    change the copy and swap it in under a lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Mapping[str, Collection] = MappingProxyType({})

    def register(self, collection: Collection) -> Collection:
        with self._lock:
            updated = dict(self._snapshot)
            updated[collection.name] = collection
            self._snapshot = MappingProxyType(updated)
        logger.info("Registered collection '%s'", collection.name)
        return collection

    def unregister(self, name: str) -> Collection | None:
        with self._lock:
            if name not in self._snapshot:
                return None
            updated = dict(self._snapshot)
            removed = updated.pop(name)
            self._snapshot = MappingProxyType(updated)
        return removed

    def get(self, name: str) -> Collection | None:
        return self._snapshot.get(name)

    def snapshot(self) -> Mapping[str, Collection]:
        return self._snapshot

    def names(self) -> list[str]:
        return sorted(self._snapshot)

    def __contains__(self, name: object) -> bool:
        return name in self._snapshot

    def __iter__(self) -> Iterator[Collection]:
        return iter(list(self._snapshot.values()))

    def __len__(self) -> int:
        return len(self._snapshot)
