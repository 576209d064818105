"""Checkpoint storage and per-key locking."""

from convograph.storage.checkpoint_store import (
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)
from convograph.storage.locks import KeyedLock

__all__ = ["CheckpointStore", "FileCheckpointStore", "InMemoryCheckpointStore", "KeyedLock"]
