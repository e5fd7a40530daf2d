"""
Local note storage.

``LocalStore`` is the data source the sync core reads from and writes to.
``DirectoryStore`` keeps everything as plain files:

    <root>/index.json          note index (list of entries)
    <root>/notes/<id>.html     note bodies
    <root>/meta/<id>.json      per-note sync metadata
    <root>/todos.json          todo list
"""

import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from lightnotes.models import (
    NoteEntry,
    NoteSyncMeta,
    TodoItem,
    index_to_wire,
    now_ms,
    parse_index,
    parse_todos,
    sort_entries,
)
from lightnotes.sync.exceptions import CorruptPayloadError

logger = logging.getLogger(__name__)

EMPTY_NOTE = "<p></p>"


class InvalidNoteIdError(ValueError):
    """Raised when a note id would place a file outside the store."""


def generate_id() -> str:
    return str(uuid.uuid4())


class LocalStore(ABC):
    """Abstract local store. All methods are coroutines."""

    @abstractmethod
    async def list_entries(self) -> list[NoteEntry]:
        """Return the index, pinned first then most recently modified."""

    @abstractmethod
    async def save_index(self, entries: list[NoteEntry]) -> None:
        """Replace the index."""

    @abstractmethod
    async def has_body(self, note_id: str) -> bool:
        """True if a body for ``note_id`` is stored."""

    @abstractmethod
    async def read_body(self, note_id: str) -> str:
        """Return the note body (``EMPTY_NOTE`` when absent)."""

    @abstractmethod
    async def write_body(self, note_id: str, content: str) -> None:
        """Store the note body."""

    @abstractmethod
    async def delete_body(self, note_id: str) -> None:
        """Remove the note body and its metadata; missing notes are ignored."""

    @abstractmethod
    async def get_meta(self, note_id: str) -> NoteSyncMeta:
        """Return sync metadata (defaults when none is stored)."""

    @abstractmethod
    async def set_meta(self, note_id: str, meta: NoteSyncMeta) -> None:
        """Store sync metadata."""

    @abstractmethod
    async def read_todos(self) -> list[TodoItem]:
        """Return the todo list."""

    @abstractmethod
    async def write_todos(self, items: list[TodoItem]) -> None:
        """Replace the todo list."""

    async def get_entry(self, note_id: str) -> NoteEntry | None:
        for entry in await self.list_entries():
            if entry.id == note_id:
                return entry
        return None

    async def create_note(self, title: str = "", body: str = EMPTY_NOTE) -> NoteEntry:
        now = now_ms()
        entry = NoteEntry(id=generate_id(), title=title, created=now, modified=now)
        await self.write_body(entry.id, body)
        entries = await self.list_entries()
        await self.save_index([entry] + entries)
        return entry

    async def delete_note(self, note_id: str) -> list[NoteEntry]:
        """Delete body and index entry; return the remaining index."""
        await self.delete_body(note_id)
        remaining = [e for e in await self.list_entries() if e.id != note_id]
        await self.save_index(remaining)
        return remaining

    async def update_title(self, note_id: str, title: str | None = None) -> None:
        """Set the title (when given) and bump the modified time."""
        entries = await self.list_entries()
        for entry in entries:
            if entry.id == note_id:
                if title is not None:
                    entry.title = title
                entry.modified = now_ms()
                await self.save_index(entries)
                return

    async def toggle_pin(self, note_id: str) -> bool:
        entries = await self.list_entries()
        for entry in entries:
            if entry.id == note_id:
                entry.pinned = not entry.pinned
                await self.save_index(entries)
                return entry.pinned
        return False

    async def update_cursor_pos(self, note_id: str, position: int) -> None:
        entries = await self.list_entries()
        for entry in entries:
            if entry.id == note_id:
                entry.cursor_pos = position
                await self.save_index(entries)
                return

    async def duplicate_note(self, note_id: str) -> NoteEntry | None:
        """Copy a note under a new id, titled ``"<title> (Copy)"``.

        Returns the new entry, or None when ``note_id`` is not in the index.
        """
        entries = await self.list_entries()
        original = next((e for e in entries if e.id == note_id), None)
        if original is None:
            return None
        body = await self.read_body(note_id)
        now = now_ms()
        entry = NoteEntry(
            id=generate_id(),
            title=f"{original.title or 'Untitled'} (Copy)",
            created=now,
            modified=now,
        )
        await self.write_body(entry.id, body)
        await self.save_index([entry] + entries)
        return entry


class DirectoryStore(LocalStore):
    """LocalStore on a plain directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.index_file = self.root / "index.json"
        self.todos_file = self.root / "todos.json"
        self.notes_dir = self.root / "notes"
        self.meta_dir = self.root / "meta"

    def init(self) -> None:
        """Create the layout; reset an empty or corrupt index to ``[]``."""
        self.notes_dir.mkdir(parents=True, exist_ok=True)
        self.meta_dir.mkdir(parents=True, exist_ok=True)
        if self._read_json(self.index_file) is None:
            self._write_json(self.index_file, [])

    def _child(self, directory: Path, name: str) -> Path:
        path = (directory / name).resolve()
        if path.parent != directory.resolve():
            raise InvalidNoteIdError(f"Path escapes store directory: {name!r}")
        return path

    def _note_file(self, note_id: str) -> Path:
        return self._child(self.notes_dir, f"{note_id}.html")

    def _meta_file(self, note_id: str) -> Path:
        return self._child(self.meta_dir, f"{note_id}.json")

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Corrupt JSON in {path}: {e}")
            return None

    def _write_text(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _write_json(self, path: Path, data: Any) -> None:
        self._write_text(path, json.dumps(data, indent=2))

    async def list_entries(self) -> list[NoteEntry]:
        data = self._read_json(self.index_file)
        if data is None:
            return []
        try:
            entries = parse_index(data)
        except CorruptPayloadError as e:
            logger.warning(f"Resetting corrupt local index: {e}")
            self._write_json(self.index_file, [])
            return []
        return sort_entries(entries)

    async def save_index(self, entries: list[NoteEntry]) -> None:
        self._write_json(self.index_file, index_to_wire(entries))

    async def has_body(self, note_id: str) -> bool:
        return self._note_file(note_id).exists()

    async def read_body(self, note_id: str) -> str:
        path = self._note_file(note_id)
        if not path.exists():
            return EMPTY_NOTE
        return path.read_text(encoding="utf-8")

    async def write_body(self, note_id: str, content: str) -> None:
        self._write_text(self._note_file(note_id), content)

    async def delete_body(self, note_id: str) -> None:
        self._note_file(note_id).unlink(missing_ok=True)
        self._meta_file(note_id).unlink(missing_ok=True)

    async def get_meta(self, note_id: str) -> NoteSyncMeta:
        return NoteSyncMeta.from_wire(self._read_json(self._meta_file(note_id)))

    async def set_meta(self, note_id: str, meta: NoteSyncMeta) -> None:
        self._write_json(self._meta_file(note_id), meta.to_wire())

    async def read_todos(self) -> list[TodoItem]:
        data = self._read_json(self.todos_file)
        if data is None:
            return []
        try:
            return parse_todos(data)
        except CorruptPayloadError as e:
            logger.warning(f"Ignoring corrupt local todos: {e}")
            return []

    async def write_todos(self, items: list[TodoItem]) -> None:
        self._write_json(self.todos_file, [item.to_wire() for item in items])
