"""Persistence layer: store protocol, PostgreSQL and in-memory implementations"""
from progress_engine.db.store import ProgressStore, ProgressMutator, StoreConflict, SessionAlreadyScored
from progress_engine.db.memory_store import InMemoryStore

__all__ = [
    "ProgressStore",
    "ProgressMutator",
    "StoreConflict",
    "SessionAlreadyScored",
    "InMemoryStore",
]
