"""S3 storage operations for the object-store endpoint."""

import logging
from typing import Tuple

import boto3
from botocore.exceptions import ClientError

from lightnotes.server.config import Settings
from lightnotes.sync.etag_cache import normalize_etag

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""


class ObjectNotFoundError(StorageError):
    """Object does not exist in storage."""


class PreconditionFailedError(StorageError):
    """Conditional write failed (tag mismatch or object already exists)."""

    def __init__(self, message: str, current_etag: str, provided_etag: str):
        super().__init__(message)
        self.current_etag = current_etag
        self.provided_etag = provided_etag


def _is_missing(error: ClientError) -> bool:
    return error.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound")


class S3ObjectStore:
    """Handles all S3 operations for the endpoint.

    Tags are returned normalized (no quotes, no weak prefix).
    """

    MAX_LIST_PAGES = 100

    def __init__(self, settings: Settings | None = None):
        if settings is None:
            settings = Settings()

        self.s3 = boto3.client(
            "s3",
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
        )
        self.bucket = settings.s3_bucket
        self.prefix = settings.s3_prefix.strip("/")

    def _make_key(self, path: str) -> str:
        """Convert a resource path to an S3 key with prefix."""
        path = path.lstrip("/")
        return f"{self.prefix}/{path}" if self.prefix else path

    def _strip_key(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + "/"):
            return key[len(self.prefix) + 1 :]
        return key

    def head(self, path: str) -> str:
        """
        Return the current tag of an object.

        Raises:
            ObjectNotFoundError: If the object doesn't exist
            StorageError: For other S3 errors
        """
        try:
            response = self.s3.head_object(Bucket=self.bucket, Key=self._make_key(path))
        except ClientError as e:
            if _is_missing(e):
                raise ObjectNotFoundError(f"Object not found: {path}")
            logger.error(f"Error checking {path}: {e}")
            raise StorageError(f"Failed to check object: {e}")
        return normalize_etag(response.get("ETag"))

    def get(self, path: str) -> Tuple[bytes, str, str]:
        """
        Read an object.

        Returns:
            Tuple of (content, etag, content_type)

        Raises:
            ObjectNotFoundError: If the object doesn't exist
            StorageError: For other S3 errors
        """
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self._make_key(path))
        except ClientError as e:
            if _is_missing(e):
                raise ObjectNotFoundError(f"Object not found: {path}")
            logger.error(f"Error reading {path}: {e}")
            raise StorageError(f"Failed to read object: {e}")

        content = response["Body"].read()
        etag = normalize_etag(response.get("ETag"))
        content_type = response.get("ContentType", "application/octet-stream")
        return content, etag, content_type

    def put(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        if_match: str | None = None,
        create_only: bool = False,
    ) -> Tuple[bool, str]:
        """
        Write an object, optionally conditional on its current tag.

        The check and the write are separate S3 calls; two writers racing
        between them can both succeed, the later one winning.

        Args:
            path: Resource path
            content: Object bytes
            content_type: Stored content type
            if_match: Expected current tag; the object must exist and match
            create_only: Fail if the object already exists

        Returns:
            Tuple of (is_new, etag)

        Raises:
            PreconditionFailedError: If a precondition does not hold
            StorageError: For other S3 errors
        """
        try:
            current = self.head(path)
        except ObjectNotFoundError:
            current = None

        if create_only and current is not None:
            raise PreconditionFailedError(
                "Object already exists", current_etag=current, provided_etag="*"
            )
        if if_match:
            expected = normalize_etag(if_match)
            if current is None or (expected != "*" and expected != current):
                raise PreconditionFailedError(
                    "ETag mismatch",
                    current_etag=current or "none",
                    provided_etag=expected,
                )

        try:
            response = self.s3.put_object(
                Bucket=self.bucket,
                Key=self._make_key(path),
                Body=content,
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error(f"Error writing {path}: {e}")
            raise StorageError(f"Failed to write object: {e}")

        etag = normalize_etag(response.get("ETag"))
        logger.info(f"{'Created' if current is None else 'Updated'} {path} ({etag})")
        return current is None, etag

    def delete(self, path: str) -> None:
        """Delete an object; deleting a missing object is not an error."""
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=self._make_key(path))
        except ClientError as e:
            if _is_missing(e):
                return
            logger.error(f"Error deleting {path}: {e}")
            raise StorageError(f"Failed to delete object: {e}")
        logger.info(f"Deleted {path}")

    def list_keys(self, prefix: str = "") -> list[str]:
        """List every resource path under ``prefix``."""
        keys = []
        paginator = self.s3.get_paginator("list_objects_v2")
        try:
            pages = paginator.paginate(Bucket=self.bucket, Prefix=self._make_key(prefix))
            for page_number, page in enumerate(pages):
                if page_number >= self.MAX_LIST_PAGES:
                    logger.warning(f"Listing of {prefix!r} truncated")
                    break
                for obj in page.get("Contents", []):
                    keys.append(self._strip_key(obj["Key"]))
        except ClientError as e:
            logger.error(f"Error listing {prefix!r}: {e}")
            raise StorageError(f"Failed to list objects: {e}")
        return keys
