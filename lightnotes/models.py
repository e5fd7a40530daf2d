"""Typed documents exchanged between the local store and the remote."""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from lightnotes.sync.exceptions import CorruptPayloadError

# Note ids become file names locally and path segments remotely.
NOTE_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


def now_ms() -> int:
    return int(time.time() * 1000)


class NoteEntry(BaseModel):
    """One note in the index: identity plus metadata (no body)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(min_length=1, pattern=NOTE_ID_PATTERN)
    title: str = ""
    created: int = 0
    modified: int = 0
    pinned: bool = False
    cursor_pos: int = Field(default=0, alias="cursorPos")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class TodoItem(BaseModel):
    """A todo list item. Unknown fields are carried through untouched."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    text: str = ""
    done: bool = False

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class NoteSyncMeta(BaseModel):
    """Per-note sync state kept next to the note in the local store."""

    model_config = ConfigDict(populate_by_name=True)

    dirty: bool = False
    base_etag: str = Field(default="", alias="baseEtag")
    base_body: str | None = Field(default=None, alias="baseBody")

    @classmethod
    def from_wire(cls, data: Any) -> "NoteSyncMeta":
        """Parse stored metadata; anything unreadable yields the defaults."""
        if not isinstance(data, dict):
            return cls()
        try:
            return cls.model_validate(data)
        except ValidationError:
            return cls()

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


_index_adapter = TypeAdapter(list[NoteEntry])
_todos_adapter = TypeAdapter(list[TodoItem])


def parse_index(data: Any) -> list[NoteEntry]:
    """Validate an index document.

    Raises:
        CorruptPayloadError: Not a list of entries with ids
    """
    try:
        return _index_adapter.validate_python(data)
    except ValidationError as e:
        raise CorruptPayloadError(f"Malformed index: {e.error_count()} errors") from e


def parse_todos(data: Any) -> list[TodoItem]:
    """Validate a todo list document.

    Raises:
        CorruptPayloadError: Not a list of todo objects
    """
    try:
        return _todos_adapter.validate_python(data)
    except ValidationError as e:
        raise CorruptPayloadError(f"Malformed todos: {e.error_count()} errors") from e


def index_to_wire(entries: list[NoteEntry]) -> list[dict[str, Any]]:
    return [entry.to_wire() for entry in entries]


def sort_entries(entries: list[NoteEntry]) -> list[NoteEntry]:
    """Pinned first, then most recently modified, then most recently created."""
    return sorted(entries, key=lambda e: (not e.pinned, -e.modified, -e.created))


def merge_index(local: list[NoteEntry], remote: list[NoteEntry]) -> list[NoteEntry]:
    """Union two indexes by id; local metadata wins for ids present in both.

    Local entries keep their order, remote-only entries follow in remote order.
    """
    merged = list(local)
    seen = {entry.id for entry in local}
    for entry in remote:
        if entry.id not in seen:
            merged.append(entry)
            seen.add(entry.id)
    return merged
