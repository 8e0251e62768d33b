"""Object snapshot: fetch an object into a private local copy.

``fetch_snapshot`` is an async context manager. The local copy exists only
inside the ``async with`` block and is removed on every exit path,
including errors raised by the caller and task cancellation.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from s3overwrite.client import ObjectStoreClient, store_call
from s3overwrite.errors import FetchError
from s3overwrite.models import ObjectSnapshot

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

_TEMP_PREFIX = "s3-overwrite-"
_TEMP_SUFFIX = ".tmp"


def snapshot_from_response(bucket: str, key: str, resp: Mapping[str, Any]) -> ObjectSnapshot:
    """Build an ObjectSnapshot from a GetObject response dict.

    The metadata dict is copied so the snapshot owns it.
    """
    tag_count = resp.get("TagCount")
    return ObjectSnapshot(
        bucket=bucket,
        key=key,
        content_type=resp.get("ContentType"),
        content_length=resp.get("ContentLength"),
        etag=resp.get("ETag"),
        last_modified=resp.get("LastModified"),
        metadata=dict(resp.get("Metadata") or {}),
        storage_class=resp.get("StorageClass"),
        tag_count=int(tag_count) if tag_count is not None else None,
        version_id=resp.get("VersionId"),
        cache_control=resp.get("CacheControl"),
        content_disposition=resp.get("ContentDisposition"),
        content_encoding=resp.get("ContentEncoding"),
        content_language=resp.get("ContentLanguage"),
        website_redirect_location=resp.get("WebsiteRedirectLocation"),
        expires=resp.get("Expires"),
    )


def remove_file(path: Path) -> None:
    """Delete ``path`` if it exists, logging (not raising) on OS errors."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to remove temporary file %s: %s", path, e)


async def _copy_body(stream: Any, fh: Any, timeout: float | None) -> int:
    """Copy a streaming body into ``fh`` in 64KB chunks; return bytes copied."""
    total = 0
    while True:
        if timeout is not None:
            chunk = await asyncio.wait_for(stream.read(_CHUNK_SIZE), timeout)
        else:
            chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        fh.write(chunk)
        total += len(chunk)
    return total


@asynccontextmanager
async def fetch_snapshot(
    client: ObjectStoreClient,
    bucket: str,
    key: str,
    *,
    temp_dir: str | Path | None = None,
    call_timeout: float | None = None,
) -> AsyncIterator[tuple[ObjectSnapshot, Path]]:
    """Fetch an object into a private temp file and describe it.

    Args:
        client: The object store client.
        bucket: The bucket name.
        key: The object key.
        temp_dir: Directory for the local copy (system default if None).
        call_timeout: Seconds allowed for GetObject and for each body read.

    Yields:
        ``(snapshot, local_path)``. The file at ``local_path`` is created
        with mode 0600 and removed when the context exits.

    Raises:
        FetchError: If the object cannot be read (including NoSuchKey) or
            the local copy cannot be written. No local file remains.
    """
    resp = await store_call(
        client.get_object,
        operation="GetObject",
        error_cls=FetchError,
        bucket=bucket,
        key=key,
        timeout=call_timeout,
    )

    path: Path | None = None
    try:
        async with resp["Body"] as stream:
            try:
                fd, name = tempfile.mkstemp(prefix=_TEMP_PREFIX, suffix=_TEMP_SUFFIX, dir=temp_dir)
            except OSError as e:
                raise FetchError(
                    f"failed to create temp file: {e}",
                    bucket=bucket,
                    key=key,
                    operation="GetObject",
                ) from e
            path = Path(name)

            try:
                with os.fdopen(fd, "wb") as fh:
                    size = await _copy_body(stream, fh, call_timeout)
            except asyncio.TimeoutError as e:
                raise FetchError(
                    f"reading object content timed out after {call_timeout}s",
                    bucket=bucket,
                    key=key,
                    operation="GetObject",
                    code="RequestTimeout",
                ) from e
            except Exception as e:
                raise FetchError(
                    f"failed to copy object content: {e}",
                    bucket=bucket,
                    key=key,
                    operation="GetObject",
                ) from e

        logger.debug("Fetched %s/%s into %s (%d bytes)", bucket, key, path, size)
        yield snapshot_from_response(bucket, key, resp), path
    finally:
        if path is not None:
            remove_file(path)
