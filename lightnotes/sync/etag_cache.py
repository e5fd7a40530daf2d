"""ETag cache: last observed entity tag per resource path."""

import logging

from lightnotes.sync.kv import KeyValueStore

logger = logging.getLogger(__name__)


def normalize_etag(tag: str | None) -> str:
    """Strip a weak-validator prefix and quote characters from an entity tag.

    The store and the transport can represent the same tag as ``W/"abc"``,
    ``"abc"`` or ``abc``; all of those normalize to ``abc``.
    """
    if not tag:
        return ""
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag.replace('"', "")


class ETagCache:
    """Mapping of resource path to last-known tag, persisted in a KeyValueStore.

    A cached tag is only ever "last observed": reads still go to the server
    with it as a conditional header, and writes probe for the current tag
    before sending a precondition.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self, path: str) -> str:
        """Return the cached tag for ``path`` or an empty string."""
        tag = self.store.load().get(path, "")
        return tag if isinstance(tag, str) else ""

    def set(self, path: str, tag: str | None) -> None:
        """Remember ``tag`` for ``path``; empty tags are ignored."""
        tag = normalize_etag(tag)
        if not tag:
            return
        data = self.store.load()
        if data.get(path) == tag:
            return
        data[path] = tag
        self.store.save(data)
        logger.debug(f"Cached etag for {path}: {tag}")

    def remove(self, path: str) -> None:
        data = self.store.load()
        if path in data:
            del data[path]
            self.store.save(data)
            logger.debug(f"Evicted etag for {path}")

    def clear(self) -> None:
        self.store.save({})

    def all(self) -> dict[str, str]:
        return {k: v for k, v in self.store.load().items() if isinstance(v, str)}
