"""Remote synchronization.

This package provides:
- ResourceClient: conditional GET/HEAD/PUT/DELETE with an ETag cache
- ConflictResolvingWriter: probe-then-conditional-write with local-wins fallback
- OfflineQueue (``lightnotes.sync.queue``): durable FIFO of pending writes
- DirtyTracker (``lightnotes.sync.dirty``): protects unsaved local edits
- SyncOrchestrator (``lightnotes.sync.orchestrator``): startup, focus and
  full-reset flows
"""

from lightnotes.sync.client import Precondition, ReadResult, ResourceClient, WriteResult
from lightnotes.sync.etag_cache import ETagCache, normalize_etag
from lightnotes.sync.exceptions import (
    ConflictError,
    CorruptPayloadError,
    NetworkError,
    NotConfiguredError,
    NotFoundError,
    RemoteHTTPError,
    SyncError,
)
from lightnotes.sync.kv import InMemoryStore, JsonFileStore, KeyValueStore
from lightnotes.sync.writer import ConflictResolvingWriter

__all__ = [
    # Client
    "ResourceClient",
    "Precondition",
    "ReadResult",
    "WriteResult",
    "ConflictResolvingWriter",
    # State
    "ETagCache",
    "normalize_etag",
    "KeyValueStore",
    "JsonFileStore",
    "InMemoryStore",
    # Exceptions
    "SyncError",
    "NotConfiguredError",
    "ConflictError",
    "RemoteHTTPError",
    "NotFoundError",
    "NetworkError",
    "CorruptPayloadError",
]
