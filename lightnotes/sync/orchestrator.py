"""
Sync orchestration.

Sequences the three sync flows against the local store:

- startup sync: merge the remote index into the local one (local metadata
  wins), backfill missing note bodies, adopt the remote todo list
- focus sync: push first (flush pending saves, drain the queue), then pull
  bodies of notes that are not dirty
- full reset: make the local copy authoritative after an import

and the edit path (record an edit, debounced push, queue on failure). Every
public entry point swallows sync failures and reports them through the
status signal instead.
"""

import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

import httpx

from lightnotes.config import ClientConfig
from lightnotes.models import (
    index_to_wire,
    merge_index,
    parse_index,
    parse_todos,
)
from lightnotes.paths import INDEX_PATH, NOTES_PREFIX, TODOS_PATH, note_path
from lightnotes.store import DirectoryStore, LocalStore
from lightnotes.sync.client import ResourceClient, WriteResult
from lightnotes.sync.dirty import DirtyTracker
from lightnotes.sync.etag_cache import ETagCache
from lightnotes.sync.exceptions import (
    ConflictError,
    CorruptPayloadError,
    NotConfiguredError,
    NotFoundError,
    SyncError,
)
from lightnotes.sync.kv import JsonFileStore, KeyValueStore
from lightnotes.sync.queue import (
    DrainResult,
    OfflineQueue,
    OperationKind,
    QueuedOperation,
)
from lightnotes.sync.retry import RetryLoop
from lightnotes.sync.writer import ConflictResolvingWriter

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DELAY = 0.4


class SyncStatus(Enum):
    """Tri-state indicator for the UI."""

    SYNCING = "syncing"
    SYNCED = "synced"
    OFFLINE = "offline"


class SyncOrchestrator:
    """Coordinates the resource client, queue and dirty tracker.

    Args:
        store: Local note store
        client: Resource client for the remote
        queue_store: Where the offline queue is persisted
        flush_local: Optional coroutine that forces the editor's pending
            local save before a push
        save_delay: Debounce delay for pushes after an edit (seconds)
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        store: LocalStore,
        client: ResourceClient,
        queue_store: KeyValueStore,
        flush_local: Callable[[], Awaitable[None]] | None = None,
        save_delay: float = DEFAULT_SAVE_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.client = client
        self.config: ClientConfig = client.config
        self.writer = ConflictResolvingWriter(client)
        self.dirty = DirtyTracker(store)
        self.retry = RetryLoop(self.drain_queue, interval=self.config.retry_interval)
        self.queue = OfflineQueue(
            queue_store,
            client,
            self.writer,
            wake=self.retry.request_retry_soon,
            on_replayed=self._after_replay,
        )
        self.flush_local = flush_local
        self.save_delay = save_delay
        self._clock = clock

        self._status = SyncStatus.OFFLINE
        self._listeners: list[Callable[[SyncStatus], None]] = []
        self._pending_pushes: dict[str, asyncio.TimerHandle] = {}
        self._push_tasks: set[asyncio.Task] = set()
        self._running_flows = 0
        self._focus_running = False
        self._focus_not_before = 0.0

    # Status signal

    @property
    def status(self) -> SyncStatus:
        return self._status

    def add_status_listener(self, callback: Callable[[SyncStatus], None]) -> None:
        self._listeners.append(callback)

    def _set_status(self, new_status: SyncStatus) -> None:
        if new_status == self._status:
            return
        old_status = self._status
        self._status = new_status
        logger.info(f"Sync status: {old_status.value} -> {new_status.value}")
        for callback in self._listeners:
            try:
                callback(new_status)
            except Exception as e:
                logger.warning(f"Status listener failed: {e}")

    def _settle_status(self) -> None:
        if self.config.is_configured and len(self.queue) == 0:
            self._set_status(SyncStatus.SYNCED)
        else:
            self._set_status(SyncStatus.OFFLINE)

    async def _run_flow(
        self,
        name: str,
        flow: Callable[[], Awaitable[None]],
        require_config: bool = True,
    ) -> bool:
        """Run a flow, mapping any sync or storage failure to offline status.

        While flows overlap, only the last one to finish settles the status.
        """
        if require_config and not self.config.is_configured:
            logger.debug(f"Skipping {name}: remote not configured")
            if not self._running_flows:
                self._set_status(SyncStatus.OFFLINE)
            return False

        self._set_status(SyncStatus.SYNCING)
        self._running_flows += 1
        ok = False
        try:
            await flow()
            ok = True
        except NotConfiguredError as e:
            logger.debug(f"{name} aborted: {e}")
        except (SyncError, OSError) as e:
            logger.warning(f"{name} failed: {e}")
        finally:
            self._running_flows -= 1

        if self._running_flows:
            return ok
        if ok:
            self._settle_status()
        else:
            self._set_status(SyncStatus.OFFLINE)
        return ok

    def _start_cooldown(self) -> None:
        self._focus_not_before = self._clock() + self.config.focus_cooldown

    # Edit path

    async def record_edit(
        self, note_id: str, body: str, title: str | None = None
    ) -> None:
        """Save a local edit and schedule a debounced push.

        The note is marked dirty before the body is written, so a pull that
        runs in between can never overwrite the new content.
        """
        await self.dirty.set_dirty(note_id, True)
        await self.store.write_body(note_id, body)
        await self.store.update_title(note_id, title)
        self._schedule_push(note_id)

    def _schedule_push(self, note_id: str) -> None:
        handle = self._pending_pushes.pop(note_id, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._pending_pushes[note_id] = loop.call_later(
            self.save_delay, self._start_push, note_id
        )

    def _start_push(self, note_id: str) -> None:
        self._pending_pushes.pop(note_id, None)
        task = asyncio.create_task(self._push_edit(note_id))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    async def _push_edit(self, note_id: str) -> None:
        async def flow():
            await self.push_note(note_id)
            await self.push_index()

        # Unconfigured pushes still run so the edit lands in the queue.
        await self._run_flow(f"push of {note_id}", flow, require_config=False)

    async def flush_pending(self) -> None:
        """Run every debounced push now and wait for in-flight ones.

        The pushes run inline rather than as separate flows, so a caller's
        own flow owns the status signal throughout.
        """
        pending = list(self._pending_pushes.items())
        self._pending_pushes.clear()
        for note_id, handle in pending:
            handle.cancel()
            await self.push_note(note_id)
        if pending:
            await self.push_index()
        if self._push_tasks:
            await asyncio.gather(*list(self._push_tasks), return_exceptions=True)

    async def push_note(self, note_id: str) -> WriteResult | None:
        """Write the note's current body; queue it if the remote is unreachable.

        The dirty flag is cleared only when the body that was accepted is
        still the local body once the write returns.
        """
        body = await self.store.read_body(note_id)
        try:
            result = await self.writer.put_with_match(note_path(note_id), body)
        except ConflictError as e:
            logger.warning(f"Note {note_id} was created remotely meanwhile: {e}")
            return None
        except SyncError as e:
            logger.info(f"Push of note {note_id} deferred ({e.code})")
            self.queue.enqueue(QueuedOperation.put_note(note_id, body))
            return None

        await self._confirm_note(note_id, result.etag, body)
        return result

    async def push_index(self) -> WriteResult | None:
        entries = await self.store.list_entries()
        try:
            return await self.writer.put_with_match(INDEX_PATH, index_to_wire(entries))
        except ConflictError as e:
            logger.warning(f"Index push rejected: {e}")
        except SyncError as e:
            logger.info(f"Index push deferred ({e.code})")
            self.queue.enqueue(QueuedOperation.put_index(entries))
        return None

    async def push_todos(self) -> WriteResult | None:
        items = await self.store.read_todos()
        try:
            return await self.writer.put_with_match(
                TODOS_PATH, [item.to_wire() for item in items]
            )
        except ConflictError as e:
            logger.warning(f"Todos push rejected: {e}")
        except SyncError as e:
            logger.info(f"Todos push deferred ({e.code})")
            self.queue.enqueue(QueuedOperation.put_todos(items))
        return None

    async def remove_note(self, note_id: str) -> None:
        """Delete a note locally and remotely (queued when offline)."""
        handle = self._pending_pushes.pop(note_id, None)
        if handle is not None:
            handle.cancel()

        remaining = await self.store.delete_note(note_id)
        try:
            await self.client.remove(note_path(note_id))
            await self.writer.put_with_match(INDEX_PATH, index_to_wire(remaining))
        except SyncError as e:
            logger.info(f"Remote delete of {note_id} deferred ({e.code})")
            self.queue.enqueue(QueuedOperation.delete_note(note_id, remaining))
            self._set_status(SyncStatus.OFFLINE)
            return
        self._settle_status()

    async def _confirm_note(self, note_id: str, etag: str, body: str) -> None:
        if await self.store.read_body(note_id) == body:
            await self.dirty.set_base(note_id, etag, body)
        else:
            logger.debug(f"Note {note_id} changed during push; staying dirty")

    async def _adopt_body(self, note_id: str, etag: str, body: str) -> bool:
        """Store a fetched body and record it as the synced base.

        An edit that lands while the body is being written keeps the note
        dirty; the base is then left alone.
        """
        await self.store.write_body(note_id, body)
        if await self.dirty.is_dirty(note_id):
            logger.info(f"Note {note_id} edited while storing pulled body")
            return False
        if await self.store.read_body(note_id) != body:
            logger.info(f"Note {note_id} changed while storing pulled body")
            return False
        await self.dirty.set_base(note_id, etag, body)
        return True

    async def _after_replay(
        self, operation: QueuedOperation, result: WriteResult | None
    ) -> None:
        if operation.kind is OperationKind.PUT_NOTE and result is not None:
            await self._confirm_note(
                operation.note_id, result.etag, operation.payload["body"]
            )

    # Entry points

    async def push_now(self) -> bool:
        """Force a save and push all local state immediately."""

        async def flow():
            await self.flush_pending()
            if self.flush_local is not None:
                await self.flush_local()
            for note_id in await self.dirty.dirty_notes():
                await self.push_note(note_id)
            await self.push_index()
            await self.push_todos()
            await self.queue.drain()

        return await self._run_flow("push", flow)

    async def drain_queue(self) -> DrainResult:
        """Replay the offline queue; never raises."""
        if not self.config.is_configured:
            return DrainResult(remaining=len(self.queue))

        if len(self.queue):
            self._set_status(SyncStatus.SYNCING)
        result = await self.queue.drain()
        if result.error:
            self._set_status(SyncStatus.OFFLINE)
        else:
            self._settle_status()
        return result

    async def startup_sync(self) -> bool:
        """Merge the remote index and todos into local state.

        Each step fails independently; nothing here blocks startup.
        """
        self._start_cooldown()

        async def flow():
            failed = []
            for step in (
                self._merge_remote_index,
                self._backfill_bodies,
                self._adopt_remote_todos,
            ):
                try:
                    await step()
                except NotConfiguredError:
                    raise
                except (SyncError, OSError) as e:
                    logger.warning(f"Startup sync step {step.__name__} skipped: {e}")
                    failed.append(e)
            if failed:
                raise failed[-1]

        return await self._run_flow("startup sync", flow)

    async def _merge_remote_index(self) -> None:
        try:
            result = await self.client.read(INDEX_PATH)
            if result.unchanged:
                return
            remote = parse_index(result.data)
        except NotFoundError:
            logger.debug("No remote index yet")
            return
        except CorruptPayloadError as e:
            logger.error(f"Ignoring remote index: {e}")
            return

        local = await self.store.list_entries()
        merged = merge_index(local, remote)
        if len(merged) != len(local):
            logger.info(f"Merged {len(merged) - len(local)} remote notes into index")
        await self.store.save_index(merged)

    async def _backfill_bodies(self) -> None:
        for entry in await self.store.list_entries():
            if await self.store.has_body(entry.id):
                continue
            path = note_path(entry.id)
            # Without a local body a cached tag would only yield a useless 304.
            self.client.etag_cache.remove(path)
            try:
                result = await self.client.read(path)
            except NotFoundError:
                logger.debug(f"No remote body for {entry.id}")
                continue
            except (SyncError, OSError) as e:
                logger.warning(f"Backfill of {entry.id} failed: {e}")
                continue
            if isinstance(result.data, str):
                await self._adopt_body(entry.id, result.etag, result.data)

    async def _adopt_remote_todos(self) -> None:
        try:
            result = await self.client.read(TODOS_PATH)
            if result.unchanged:
                return
            items = parse_todos(result.data)
        except NotFoundError:
            return
        except CorruptPayloadError as e:
            logger.error(f"Ignoring remote todos: {e}")
            return
        await self.store.write_todos(items)

    async def focus_sync(self, force: bool = False) -> bool:
        """Push local state, then pull updates for notes that are not dirty.

        Skipped while another focus sync is running or inside the cool-off
        window that follows startup, reset and the previous focus sync.

        Returns:
            True if the sync ran and completed
        """
        if self._focus_running:
            logger.debug("Focus sync already running")
            return False
        if not force and self._clock() < self._focus_not_before:
            logger.debug("Focus sync skipped (cool-off)")
            return False

        self._focus_running = True
        self._start_cooldown()
        try:

            async def flow():
                await self.flush_pending()
                if self.flush_local is not None:
                    await self.flush_local()
                await self.queue.drain()
                await self._merge_remote_index()
                await self._backfill_bodies()
                await self._pull_bodies()

            return await self._run_flow("focus sync", flow)
        finally:
            self._focus_running = False

    async def _pull_bodies(self) -> None:
        for entry in await self.store.list_entries():
            if await self.dirty.is_dirty(entry.id):
                continue
            if not await self.store.has_body(entry.id):
                continue
            try:
                result = await self.client.read(note_path(entry.id))
            except NotFoundError:
                continue
            if result.unchanged or not isinstance(result.data, str):
                continue
            # Local state may have changed while the read was in flight.
            if await self.dirty.is_dirty(entry.id):
                logger.info(f"Note {entry.id} edited during pull; keeping local")
                continue
            if await self._adopt_body(entry.id, result.etag, result.data):
                logger.debug(f"Pulled note {entry.id}")

    async def full_reset_sync(self) -> bool:
        """Replace the remote with the local copy.

        Deletes every remote note, empties remote todos, then uploads all
        local bodies, the index and the todos. Queued operations predate the
        reset and are discarded.
        """
        self._start_cooldown()

        async def flow():
            self.queue.clear()
            for key in await self.client.list_keys(NOTES_PREFIX):
                await self.client.remove(key)
            await self.writer.put_with_match(TODOS_PATH, [])

            entries = await self.store.list_entries()
            for entry in entries:
                body = await self.store.read_body(entry.id)
                result = await self.writer.put_with_match(note_path(entry.id), body)
                await self._confirm_note(entry.id, result.etag, body)
            await self.writer.put_with_match(INDEX_PATH, index_to_wire(entries))
            items = await self.store.read_todos()
            await self.writer.put_with_match(
                TODOS_PATH, [item.to_wire() for item in items]
            )
            logger.info(f"Full reset uploaded {len(entries)} notes")

        return await self._run_flow("full reset", flow)

    async def aclose(self) -> None:
        await self.retry.stop()
        try:
            await self.flush_pending()
        finally:
            await self.client.aclose()


def create_orchestrator(
    home: Path,
    config: ClientConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    flush_local: Callable[[], Awaitable[None]] | None = None,
) -> SyncOrchestrator:
    """Build an orchestrator over the standard on-disk layout under ``home``.

    Notes live in ``home/data``; the ETag cache and offline queue in
    ``home/sync``.
    """
    home = Path(home)
    store = DirectoryStore(home / "data")
    store.init()
    etag_cache = ETagCache(JsonFileStore(home / "sync" / "etags.json"))
    client = ResourceClient(config, etag_cache, transport=transport)
    return SyncOrchestrator(
        store,
        client,
        JsonFileStore(home / "sync" / "queue.json"),
        flush_local=flush_local,
    )
