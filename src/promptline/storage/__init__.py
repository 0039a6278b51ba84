"""Keyed record storage backends."""

from .kv import InMemoryStore, KeyValueStore, LocalStore, create_store

__all__ = ["InMemoryStore", "KeyValueStore", "LocalStore", "create_store"]
