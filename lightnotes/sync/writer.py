"""Conflict-resolving writes: probe, conditional PUT, local-wins fallback."""

import logging
from typing import Any

from lightnotes.sync.client import Precondition, ResourceClient, WriteResult
from lightnotes.sync.exceptions import ConflictError

logger = logging.getLogger(__name__)


class ConflictResolvingWriter:
    """Wraps PUT with a HEAD-then-conditional-write protocol.

    1. HEAD the path for the tag current at write time (the cache may be stale).
    2. PUT with that tag as If-Match.
    3. On 412 (the object changed between HEAD and PUT) retry once without a
       precondition. This is last-writer-wins: the local body always
       overwrites a concurrent remote change this client could not see.
    4. If the object is absent, PUT create-only. A 412 there (object created
       concurrently) propagates to the caller; it is not retried.

    The probe and the write are two round trips with no lock between them, so
    this narrows the race window without closing it.
    """

    def __init__(self, client: ResourceClient):
        self.client = client

    async def put_with_match(self, path: str, body: Any) -> WriteResult:
        current = await self.client.probe(path)

        if current is None:
            return await self.client.write(path, body, Precondition.CREATE_ONLY)

        if not current:
            # Object exists but the server sent no tag; fall back to the cache.
            current = self.client.etag_cache.get(path)

        precondition = (
            Precondition.match(current) if current else Precondition.UNCONDITIONAL
        )
        try:
            return await self.client.write(path, body, precondition)
        except ConflictError:
            logger.info(
                f"Remote {path} changed after probe; overwriting with local copy"
            )
            return await self.client.write(path, body, Precondition.UNCONDITIONAL)
