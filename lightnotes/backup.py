"""Zip backup export and import.

Archive layout mirrors the remote: ``index.json`` plus ``notes/<id>.html``.
An import replaces local notes; follow it with a full reset sync to make the
imported copy authoritative remotely.
"""

import json
import logging
import zipfile
import zlib
from pathlib import Path

from lightnotes.models import index_to_wire, parse_index
from lightnotes.paths import INDEX_PATH, note_path
from lightnotes.store import LocalStore
from lightnotes.sync.exceptions import CorruptPayloadError

logger = logging.getLogger(__name__)


class BackupError(Exception):
    """Raised when an archive is missing or malformed."""


async def export_zip(store: LocalStore, path: Path) -> int:
    """Write every note to a zip archive.

    Returns:
        Number of notes exported
    """
    entries = await store.list_entries()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(INDEX_PATH, json.dumps(index_to_wire(entries)))
        for entry in entries:
            archive.writestr(note_path(entry.id), await store.read_body(entry.id))
    logger.info(f"Exported {len(entries)} notes to {path}")
    return len(entries)


async def import_zip(store: LocalStore, path: Path) -> int:
    """Load notes from a zip archive into the local store.

    Bodies missing from the archive or unreadable are skipped; the archive's
    index replaces the local one.

    Returns:
        Number of note bodies imported

    Raises:
        BackupError: Archive unreadable, or index.json missing or invalid
    """
    try:
        archive = zipfile.ZipFile(path)
    except (OSError, zipfile.BadZipFile) as e:
        raise BackupError(f"Cannot open backup {path}: {e}") from e

    with archive:
        names = set(archive.namelist())
        if INDEX_PATH not in names:
            raise BackupError("Invalid backup: missing index.json")
        try:
            entries = parse_index(json.loads(archive.read(INDEX_PATH)))
        except (
            json.JSONDecodeError,
            UnicodeDecodeError,
            zipfile.BadZipFile,
            zlib.error,
            CorruptPayloadError,
        ) as e:
            raise BackupError(f"Invalid index.json in backup: {e}") from e

        imported = 0
        for entry in entries:
            member = note_path(entry.id)
            if member not in names:
                logger.warning(f"Backup has no body for note {entry.id}")
                continue
            try:
                body = archive.read(member).decode("utf-8")
            except (UnicodeDecodeError, zipfile.BadZipFile, zlib.error) as e:
                logger.warning(f"Skipping unreadable body for note {entry.id}: {e}")
                continue
            await store.write_body(entry.id, body)
            imported += 1

    await store.save_index(entries)
    logger.info(f"Imported {imported} notes from {path}")
    return imported
