"""
Durable offline queue of pending remote writes.

Operations are appended when a remote call fails and replayed strictly in
order by ``drain()``:

- success: the operation is removed
- conflict: the operation is dropped (local state has already moved on; the
  next manual save reconciles)
- client error (4xx that retrying cannot fix): dropped and logged
- anything else (offline, 5xx, not configured): the operation and everything
  after it stay queued for the next drain, order preserved

There is no per-path coalescing; repeated writes to one path are replayed one
after another and the last one wins on the server.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from lightnotes.models import NoteEntry, TodoItem, index_to_wire, now_ms
from lightnotes.paths import INDEX_PATH, TODOS_PATH, note_path
from lightnotes.sync.client import ResourceClient, WriteResult
from lightnotes.sync.exceptions import ConflictError, SyncError, is_client_error
from lightnotes.sync.kv import KeyValueStore
from lightnotes.sync.writer import ConflictResolvingWriter

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    PUT_NOTE = "put_note"
    PUT_INDEX = "put_index"
    DELETE_NOTE = "delete_note"
    PUT_TODOS = "put_todos"


@dataclass
class QueuedOperation:
    """A pending remote operation."""

    kind: OperationKind
    payload: dict[str, Any]
    enqueued_at: int = field(default_factory=now_ms)

    @classmethod
    def put_note(cls, note_id: str, body: str) -> "QueuedOperation":
        return cls(OperationKind.PUT_NOTE, {"note_id": note_id, "body": body})

    @classmethod
    def put_index(cls, entries: list[NoteEntry]) -> "QueuedOperation":
        return cls(OperationKind.PUT_INDEX, {"index": index_to_wire(entries)})

    @classmethod
    def delete_note(
        cls, note_id: str, index: list[NoteEntry] | None = None
    ) -> "QueuedOperation":
        payload: dict[str, Any] = {"note_id": note_id}
        if index is not None:
            payload["index"] = index_to_wire(index)
        return cls(OperationKind.DELETE_NOTE, payload)

    @classmethod
    def put_todos(cls, items: list[TodoItem]) -> "QueuedOperation":
        return cls(
            OperationKind.PUT_TODOS, {"todos": [item.to_wire() for item in items]}
        )

    @property
    def note_id(self) -> str | None:
        return self.payload.get("note_id")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueuedOperation":
        return cls(
            kind=OperationKind(data["kind"]),
            payload=dict(data.get("payload") or {}),
            enqueued_at=int(data.get("enqueued_at") or 0),
        )


@dataclass
class DrainResult:
    """Outcome of one drain pass."""

    succeeded: list[QueuedOperation] = field(default_factory=list)
    dropped: list[QueuedOperation] = field(default_factory=list)
    remaining: int = 0
    error: str | None = None

    @property
    def complete(self) -> bool:
        """True if nothing is left queued."""
        return self.remaining == 0


ReplayCallback = Callable[[QueuedOperation, WriteResult | None], Awaitable[None]]


class OfflineQueue:
    """FIFO of QueuedOperations persisted in a KeyValueStore.

    Args:
        store: Where the queue lives between runs
        client: Resource client used for deletes and the configured check
        writer: Conflict-resolving writer used for puts
        wake: Optional hint that a retry should happen soon (called after
            every enqueue); the interval timer covers its absence
        on_replayed: Optional coroutine run after each successful replay
    """

    STORE_KEY = "operations"

    def __init__(
        self,
        store: KeyValueStore,
        client: ResourceClient,
        writer: ConflictResolvingWriter,
        wake: Callable[[], None] | None = None,
        on_replayed: ReplayCallback | None = None,
    ):
        self.store = store
        self.client = client
        self.writer = writer
        self.wake = wake
        self.on_replayed = on_replayed
        self._lock = asyncio.Lock()

    def _load_raw(self) -> list[dict[str, Any]]:
        raw = self.store.load().get(self.STORE_KEY, [])
        return raw if isinstance(raw, list) else []

    def _save_raw(self, raw: list[dict[str, Any]]) -> None:
        self.store.save({self.STORE_KEY: raw})

    def pending(self) -> list[QueuedOperation]:
        """Queued operations in replay order; unreadable entries are skipped."""
        operations = []
        for item in self._load_raw():
            try:
                operations.append(QueuedOperation.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable queue entry: {e}")
        return operations

    def __len__(self) -> int:
        return len(self._load_raw())

    def enqueue(self, operation: QueuedOperation) -> None:
        """Append an operation. Never raises."""
        try:
            raw = self._load_raw()
            raw.append(operation.to_dict())
            self._save_raw(raw)
            logger.info(
                f"Queued {operation.kind.value} for later ({len(raw)} pending)"
            )
        except OSError as e:
            logger.error(f"Failed to persist queued {operation.kind.value}: {e}")
            return

        if self.wake is not None:
            try:
                self.wake()
            except Exception as e:
                logger.debug(f"Retry wake hint failed: {e}")

    def clear(self) -> None:
        self._save_raw([])

    def _pop_head(self) -> None:
        raw = self._load_raw()
        if raw:
            self._save_raw(raw[1:])

    async def _replay(self, operation: QueuedOperation) -> WriteResult | None:
        payload = operation.payload
        if operation.kind is OperationKind.PUT_NOTE:
            return await self.writer.put_with_match(
                note_path(payload["note_id"]), payload["body"]
            )
        if operation.kind is OperationKind.PUT_INDEX:
            return await self.writer.put_with_match(INDEX_PATH, payload["index"])
        if operation.kind is OperationKind.DELETE_NOTE:
            await self.client.remove(note_path(payload["note_id"]))
            if "index" in payload:
                return await self.writer.put_with_match(INDEX_PATH, payload["index"])
            return None
        if operation.kind is OperationKind.PUT_TODOS:
            return await self.writer.put_with_match(TODOS_PATH, payload["todos"])
        raise ValueError(f"Unknown operation kind: {operation.kind}")

    async def drain(self) -> DrainResult:
        """Replay queued operations in order until one fails transiently."""
        async with self._lock:
            result = DrainResult(remaining=len(self._load_raw()))
            if not self.client.configured:
                return result

            raw_items = self._load_raw()
            if not raw_items:
                return result
            logger.debug(f"Draining {len(raw_items)} queued operations")

            for raw in raw_items:
                try:
                    operation = QueuedOperation.from_dict(raw)
                except (KeyError, ValueError, TypeError) as e:
                    logger.warning(f"Dropping unreadable queue entry: {e}")
                    self._pop_head()
                    continue

                try:
                    write_result = await self._replay(operation)
                except ConflictError as e:
                    logger.warning(f"Dropping queued {operation.kind.value}: {e}")
                    result.dropped.append(operation)
                    self._pop_head()
                    continue
                except SyncError as e:
                    if is_client_error(e):
                        logger.error(f"Dropping queued {operation.kind.value}: {e}")
                        result.dropped.append(operation)
                        self._pop_head()
                        continue
                    logger.info(f"Queue drain stopped ({e.code}): {e}")
                    result.error = e.code
                    break
                except (KeyError, ValueError) as e:
                    logger.error(f"Dropping malformed {operation.kind.value}: {e}")
                    result.dropped.append(operation)
                    self._pop_head()
                    continue

                self._pop_head()
                result.succeeded.append(operation)
                if self.on_replayed is not None:
                    try:
                        await self.on_replayed(operation, write_result)
                    except (SyncError, OSError) as e:
                        logger.warning(f"Post-replay hook failed: {e}")

            result.remaining = len(self._load_raw())
            if result.succeeded or result.dropped:
                logger.info(
                    f"Queue drain: {len(result.succeeded)} replayed, "
                    f"{len(result.dropped)} dropped, {result.remaining} pending"
                )
            return result
