"""
Storage - JSON key-value persistence.

Components:
- StateStore: SQLite-backed store (~/.cadence/state.db)
- MemoryStore: Non-durable store, also the fallback when SQLite is unavailable
- open_store: Opens the SQLite store or degrades to memory
"""

from cadence.storage import keys
from cadence.storage.state_store import MemoryStore, StateStore, StoreError, open_store

__all__ = [
    "keys",
    "MemoryStore",
    "StateStore",
    "StoreError",
    "open_store",
]
