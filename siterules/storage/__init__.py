"""
Persistent key-value storage for siterules.
"""

from siterules.storage.kv_store import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
]
