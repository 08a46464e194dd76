"""Resource store interface and the in-memory implementation."""

from register_engine.store.memory import InMemoryResourceStore
from register_engine.store.protocol import ResourceStore
from register_engine.store.query import ResourceQuery

__all__ = ["InMemoryResourceStore", "ResourceQuery", "ResourceStore"]
