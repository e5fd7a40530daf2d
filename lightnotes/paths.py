"""Remote resource paths and content types shared by client and server."""

INDEX_PATH = "index.json"
TODOS_PATH = "todos.json"
NOTES_PREFIX = "notes/"
NOTE_SUFFIX = ".html"


def note_path(note_id: str) -> str:
    """Resource path of a note body, e.g. ``notes/<id>.html``."""
    return f"{NOTES_PREFIX}{note_id}{NOTE_SUFFIX}"


def guess_content_type(path: str) -> str:
    if path.endswith(".json"):
        return "application/json"
    if path.endswith(".html"):
        return "text/html; charset=utf-8"
    return "application/octet-stream"
