"""Per-note dirty tracking.

A note is marked dirty the moment its local content changes and stays dirty
until a remote write of that exact content is confirmed. Pull flows must not
overwrite a dirty note's body.
"""

import logging

from lightnotes.models import NoteSyncMeta
from lightnotes.store import LocalStore

logger = logging.getLogger(__name__)


class DirtyTracker:
    """Dirty flag plus baseline (tag, body) per note, kept in the local store."""

    def __init__(self, store: LocalStore):
        self.store = store

    async def get(self, note_id: str) -> NoteSyncMeta:
        return await self.store.get_meta(note_id)

    async def is_dirty(self, note_id: str) -> bool:
        return (await self.store.get_meta(note_id)).dirty

    async def set_dirty(self, note_id: str, dirty: bool = True) -> None:
        meta = await self.store.get_meta(note_id)
        if meta.dirty == dirty:
            return
        meta.dirty = dirty
        await self.store.set_meta(note_id, meta)
        logger.debug(f"Note {note_id} dirty={dirty}")

    async def set_base(self, note_id: str, etag: str, body: str | None) -> None:
        """Record the content the remote accepted and clear the dirty flag.

        Only call this after the write of ``body`` has been confirmed.
        """
        meta = await self.store.get_meta(note_id)
        meta.base_etag = etag or ""
        if body is not None:
            meta.base_body = body
        meta.dirty = False
        await self.store.set_meta(note_id, meta)
        logger.debug(f"Note {note_id} synced at {meta.base_etag or 'unknown tag'}")

    async def dirty_notes(self) -> list[str]:
        """Ids of every indexed note currently marked dirty."""
        dirty = []
        for entry in await self.store.list_entries():
            if await self.is_dirty(entry.id):
                dirty.append(entry.id)
        return dirty
