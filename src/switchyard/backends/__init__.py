"""Storage backends and their optional capabilities."""

from __future__ import annotations

from switchyard.backends.base import (
    Aggregator,
    Backend,
    Capability,
    Migratable,
    Search,
)
from switchyard.backends.memory import MemoryBackend
from switchyard.backends.meta_index import JoinSpec, MetaIndex, parse_join_spec
from switchyard.backends.registry import CollectionRegistry
from switchyard.backends.sql import SqlBackend

MEMORY_URL_SCHEME = "memory://"


def new_backend(url: str, echo: bool = False) -> Backend:
    """Create a backend for a connection URL.

    ``memory://`` selects the in-process backend; anything else is handed to
    SQLAlchemy.
    """
    if url.startswith(MEMORY_URL_SCHEME):
        return MemoryBackend()
    return SqlBackend(url, echo=echo)


__all__ = [
    "Aggregator",
    "Backend",
    "Capability",
    "CollectionRegistry",
    "JoinSpec",
    "MemoryBackend",
    "MetaIndex",
    "Migratable",
    "Search",
    "SqlBackend",
    "new_backend",
    "parse_join_spec",
]
