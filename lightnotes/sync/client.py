"""Async HTTP client for the remote object store.

Performs conditional GET/HEAD/PUT/DELETE against the endpoint, keeps the ETag
cache current and translates HTTP outcomes into a small set of results and
exceptions (see ``lightnotes.sync.exceptions``).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from lightnotes.config import ClientConfig
from lightnotes.paths import guess_content_type
from lightnotes.sync.etag_cache import ETagCache, normalize_etag
from lightnotes.sync.exceptions import (
    ConflictError,
    CorruptPayloadError,
    NetworkError,
    NotConfiguredError,
    NotFoundError,
    RemoteHTTPError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Precondition:
    """Precondition attached to a write.

    Use :meth:`match` for an If-Match write, :data:`CREATE_ONLY` for
    ``If-None-Match: *`` and :data:`UNCONDITIONAL` to overwrite whatever is
    there. Writes default to create-only so that a missing precondition
    never silently destroys a concurrently created object.
    """

    if_match: str | None = None
    create_only: bool = False

    @classmethod
    def match(cls, tag: str) -> "Precondition":
        return cls(if_match=normalize_etag(tag))

    def headers(self) -> dict[str, str]:
        if self.if_match:
            return {"If-Match": self.if_match}
        if self.create_only:
            return {"If-None-Match": "*"}
        return {}

    def __str__(self) -> str:
        if self.if_match:
            return f"if-match {self.if_match}"
        return "create-only" if self.create_only else "unconditional"


Precondition.CREATE_ONLY = Precondition(create_only=True)
Precondition.UNCONDITIONAL = Precondition()


@dataclass
class ReadResult:
    """Result of a conditional read.

    ``unchanged`` means the server confirmed the cached tag and sent no body.
    It does not mean local state is current: a dirty local copy still has to
    be pushed.
    """

    unchanged: bool
    etag: str
    data: Any = None
    status: int = 200


@dataclass
class WriteResult:
    etag: str
    status: int = 200


class ResourceClient:
    """Client for the note object store.

    Args:
        config: Live client configuration; checked before every call
        etag_cache: Cache of last observed tags per path
        transport: Optional httpx transport (tests inject a MockTransport)
    """

    def __init__(
        self,
        config: ClientConfig,
        etag_cache: ETagCache,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.etag_cache = etag_cache
        self._client = httpx.AsyncClient(timeout=config.timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return self.config.is_configured

    def ensure_configured(self) -> None:
        """Raise NotConfiguredError if endpoint or credential is missing."""
        if not self.config.is_configured:
            raise NotConfiguredError(
                f"Remote API not configured: {self.config.missing_reason}"
            )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        self.ensure_configured()

        request_headers = {"Authorization": f"Bearer {self.config.auth_token}"}
        if method in ("GET", "HEAD"):
            request_headers["Cache-Control"] = "no-store"
        request_headers.update(headers or {})

        url = f"{self.config.remote_url}/{path}"
        try:
            response = await self._client.request(
                method, url, headers=request_headers, content=content, params=params
            )
        except httpx.TransportError as e:
            logger.debug(f"{method} {path} failed: {e}")
            raise NetworkError(path, e) from e

        logger.debug(f"{method} {path} -> {response.status_code}")

        if response.status_code == 304:
            return response
        if response.status_code == 412:
            raise ConflictError(path)
        if response.status_code == 404:
            raise NotFoundError(path)
        if not response.is_success:
            raise RemoteHTTPError(path, response.status_code, response.reason_phrase)
        return response

    @staticmethod
    def _encode(path: str, body: Any) -> tuple[bytes, str]:
        if isinstance(body, bytes):
            return body, guess_content_type(path)
        if isinstance(body, str):
            return body.encode("utf-8"), guess_content_type(path)
        return json.dumps(body).encode("utf-8"), "application/json"

    @staticmethod
    def _decode(path: str, response: httpx.Response) -> Any:
        content_type = response.headers.get("Content-Type", "").lower()
        if "application/json" in content_type:
            try:
                return response.json()
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise CorruptPayloadError(f"Invalid JSON in {path}: {e}") from e
        return response.text

    async def read(self, path: str) -> ReadResult:
        """Conditional GET using the cached tag.

        Raises:
            NotFoundError: Object does not exist
            CorruptPayloadError: JSON body could not be decoded
        """
        cached = self.etag_cache.get(path)
        headers = {"If-None-Match": cached} if cached else {}
        response = await self._request("GET", path, headers=headers)

        etag = normalize_etag(response.headers.get("ETag"))
        if response.status_code == 304:
            return ReadResult(unchanged=True, etag=etag or cached, status=304)

        data = self._decode(path, response)
        if etag:
            self.etag_cache.set(path, etag)
        return ReadResult(
            unchanged=False, etag=etag, data=data, status=response.status_code
        )

    async def probe(self, path: str) -> str | None:
        """HEAD the object; return its current tag, or None if absent."""
        try:
            response = await self._request("HEAD", path)
        except NotFoundError:
            return None
        return normalize_etag(response.headers.get("ETag"))

    async def write(
        self,
        path: str,
        body: Any,
        precondition: Precondition = Precondition.CREATE_ONLY,
    ) -> WriteResult:
        """PUT ``body`` to ``path`` under ``precondition``.

        Raises:
            ConflictError: The precondition did not hold on the server
        """
        content, content_type = self._encode(path, body)
        headers = {"Content-Type": content_type, **precondition.headers()}
        response = await self._request("PUT", path, headers=headers, content=content)

        etag = normalize_etag(response.headers.get("ETag"))
        if etag:
            self.etag_cache.set(path, etag)
        logger.debug(f"Wrote {path} ({precondition}) -> {etag or 'no etag'}")
        return WriteResult(etag=etag, status=response.status_code)

    async def remove(self, path: str) -> None:
        """Unconditional, idempotent DELETE; evicts the cached tag."""
        try:
            await self._request("DELETE", path)
        except NotFoundError:
            logger.debug(f"Delete of {path}: already absent")
        self.etag_cache.remove(path)

    async def list_keys(self, prefix: str = "") -> list[str]:
        """Return every object key under ``prefix``."""
        response = await self._request("GET", "list", params={"prefix": prefix})
        data = self._decode("list", response)
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise CorruptPayloadError(f"Invalid key listing: {e}") from e

        keys = data.get("keys") if isinstance(data, dict) else None
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise CorruptPayloadError("Key listing has no 'keys' list")
        return keys

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
