"""FastAPI application for the lightnotes object-store endpoint.

Translates HTTP verbs on resource paths (``index.json``,
``notes/<id>.html``, ``todos.json``) into bucket operations:

- HEAD   current tag or 404
- GET    body + tag, or 304 when If-None-Match matches
- GET    /list?prefix=... all keys under a prefix
- PUT    conditional on If-Match / If-None-Match: *, 412 on mismatch
- DELETE unconditional and idempotent
"""

import logging
import secrets

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lightnotes.paths import guess_content_type
from lightnotes.server.config import Settings
from lightnotes.server.models import ErrorResponse, KeyListResponse
from lightnotes.server.storage import (
    ObjectNotFoundError,
    PreconditionFailedError,
    S3ObjectStore,
    StorageError,
)
from lightnotes.sync.etag_cache import normalize_etag

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}


def get_storage(request: Request) -> S3ObjectStore:
    return request.app.state.storage


def verify_token(request: Request, authorization: str | None = Header(default=None)):
    """Check the single bearer token configured for this endpoint."""
    expected = request.app.state.settings.lightnotes_token
    provided = authorization or ""
    if not expected or not secrets.compare_digest(provided, f"Bearer {expected}"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )


def create_app(
    settings: Settings | None = None, storage: S3ObjectStore | None = None
) -> FastAPI:
    """Build the endpoint app.

    Args:
        settings: Endpoint settings (read from the environment when omitted)
        storage: Object store (built from settings when omitted)
    """
    settings = settings or Settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="Lightnotes Object Store",
        description="Conditional object storage for lightnotes sync",
        version="0.3.0",
    )
    app.state.settings = settings
    app.state.storage = storage or S3ObjectStore(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "HEAD", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "If-Match", "If-None-Match"],
        expose_headers=["ETag"],
    )

    @app.get("/list", response_model=KeyListResponse, dependencies=[Depends(verify_token)])
    async def list_objects(
        prefix: str = "", storage: S3ObjectStore = Depends(get_storage)
    ):
        """List all object keys under a prefix."""
        try:
            keys = storage.list_keys(prefix)
        except StorageError as e:
            logger.error(f"Storage error listing {prefix!r}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Storage error",
            )
        return JSONResponse(content={"keys": keys}, headers=NO_STORE)

    @app.head("/{path:path}", dependencies=[Depends(verify_token)])
    async def head_object(path: str, storage: S3ObjectStore = Depends(get_storage)):
        """Return the current tag of an object."""
        try:
            etag = storage.head(path)
        except ObjectNotFoundError:
            return Response(status_code=status.HTTP_404_NOT_FOUND)
        except StorageError as e:
            logger.error(f"Storage error checking {path}: {e}")
            return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(headers={"ETag": etag, **NO_STORE})

    @app.get("/{path:path}", dependencies=[Depends(verify_token)])
    async def get_object(
        path: str,
        storage: S3ObjectStore = Depends(get_storage),
        if_none_match: str | None = Header(default=None),
    ):
        """Read an object; 304 when the caller's tag is current."""
        try:
            content, etag, content_type = storage.get(path)
        except ObjectNotFoundError as e:
            logger.debug(f"Not found: {path}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except StorageError as e:
            logger.error(f"Storage error reading {path}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Storage error",
            )

        if if_none_match and normalize_etag(if_none_match) == etag:
            return Response(
                status_code=status.HTTP_304_NOT_MODIFIED,
                headers={"ETag": etag, **NO_STORE},
            )
        return Response(
            content=content,
            media_type=content_type or guess_content_type(path),
            headers={"ETag": etag, **NO_STORE},
        )

    @app.put("/{path:path}", dependencies=[Depends(verify_token)])
    async def put_object(
        path: str,
        request: Request,
        storage: S3ObjectStore = Depends(get_storage),
        if_match: str | None = Header(default=None),
        if_none_match: str | None = Header(default=None),
    ):
        """Write an object under optional If-Match / If-None-Match: * checks.

        Returns 201 for new objects, 200 for updates, 412 on a failed check.
        """
        content = await request.body()
        try:
            is_new, etag = storage.put(
                path,
                content,
                content_type=guess_content_type(path),
                if_match=if_match,
                create_only=(if_none_match or "").strip() == "*",
            )
        except PreconditionFailedError as e:
            logger.warning(f"Precondition failed for {path}: {e}")
            return JSONResponse(
                status_code=status.HTTP_412_PRECONDITION_FAILED,
                content=ErrorResponse(
                    detail=str(e), error_code="PRECONDITION_FAILED"
                ).model_dump(),
            )
        except StorageError as e:
            logger.error(f"Storage error writing {path}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Storage error",
            )

        return Response(
            status_code=status.HTTP_201_CREATED if is_new else status.HTTP_200_OK,
            headers={"ETag": etag},
        )

    @app.delete(
        "/{path:path}",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(verify_token)],
    )
    async def delete_object(path: str, storage: S3ObjectStore = Depends(get_storage)):
        """Delete an object (idempotent)."""
        try:
            storage.delete(path)
        except StorageError as e:
            logger.error(f"Storage error deleting {path}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Storage error",
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent error format."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(detail=str(exc.detail)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unexpected error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                detail="Internal server error", error_code="INTERNAL_ERROR"
            ).model_dump(),
        )

    return app
