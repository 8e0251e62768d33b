"""Object store client protocol and the aiobotocore client factory.

The overwrite protocol only needs five S3 operations. Any object exposing
them with boto-style keyword arguments and response dicts can be used,
which is how the tests substitute an in-memory store. An aiobotocore S3
client satisfies the protocol as-is.

Credentials are resolved via the standard AWS credential chain
(env vars, ~/.aws/credentials, IAM role, etc.) unless explicit keys are
configured.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from s3overwrite import metrics
from s3overwrite.errors import OverwriteError

if TYPE_CHECKING:
    from s3overwrite.config import StoreConfig

logger = logging.getLogger(__name__)


class ObjectStoreClient(Protocol):
    """The store operations consumed by the overwrite protocol."""

    async def get_object(self, **kwargs: Any) -> dict[str, Any]:
        """Read content and attributes (Bucket, Key)."""
        ...

    async def get_object_tagging(self, **kwargs: Any) -> dict[str, Any]:
        """Read the object's TagSet (Bucket, Key)."""
        ...

    async def get_object_acl(self, **kwargs: Any) -> dict[str, Any]:
        """Read the object's Owner and Grants (Bucket, Key)."""
        ...

    async def put_object(self, **kwargs: Any) -> dict[str, Any]:
        """Create or replace an object with content, attributes, ACL and tagging."""
        ...

    async def put_object_acl(self, **kwargs: Any) -> dict[str, Any]:
        """Replace the object's ACL with explicit grants (GrantWrite allowed)."""
        ...


@asynccontextmanager
async def create_client(config: StoreConfig) -> AsyncIterator[ObjectStoreClient]:
    """Open an aiobotocore S3 client configured from ``config``.

    Args:
        config: Store connection settings.

    Yields:
        The S3 client; it is closed when the context exits.
    """
    client_kwargs: dict[str, Any] = {"region_name": config.region}
    if config.endpoint_url:
        client_kwargs["endpoint_url"] = config.endpoint_url
    if config.use_path_style:
        client_kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})

    session = AioSession()
    # Use explicit credentials if provided, otherwise fall back to chain
    if config.access_key_id and config.secret_access_key:
        session.set_credentials(config.access_key_id, config.secret_access_key)

    async with session.create_client("s3", **client_kwargs) as client:
        logger.debug(
            "S3 client opened: region=%s endpoint=%s",
            config.region,
            config.endpoint_url or "default",
        )
        yield client


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


async def store_call(
    method: Callable[..., Awaitable[dict[str, Any]]],
    *,
    operation: str,
    error_cls: type[OverwriteError],
    bucket: str,
    key: str,
    timeout: float | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """Issue one store request, mapping any failure to ``error_cls``.

    There is no retry. Cancellation of the calling task is not caught.

    Args:
        method: Bound client method, e.g. ``client.get_object``.
        operation: S3 operation name for errors, logs and metrics.
        error_cls: The taxonomy error raised on failure.
        bucket: Bucket name (sent as ``Bucket``).
        key: Object key (sent as ``Key``).
        timeout: Seconds to wait before giving up, or None to wait forever.
        **kwargs: Remaining request fields.

    Returns:
        The response dict.

    Raises:
        OverwriteError: ``error_cls`` chained to the underlying failure.
    """
    start = time.monotonic()
    status = "error"
    try:
        call = method(Bucket=bucket, Key=key, **kwargs)
        if timeout is not None:
            response = await asyncio.wait_for(call, timeout)
        else:
            response = await call
        status = "success"
        return response
    except ClientError as e:
        raise error_cls(
            f"{operation} failed: {e}",
            bucket=bucket,
            key=key,
            operation=operation,
            code=_error_code(e),
        ) from e
    except asyncio.TimeoutError as e:
        raise error_cls(
            f"{operation} timed out after {timeout}s",
            bucket=bucket,
            key=key,
            operation=operation,
            code="RequestTimeout",
        ) from e
    except Exception as e:
        raise error_cls(
            f"{operation} failed: {e}",
            bucket=bucket,
            key=key,
            operation=operation,
        ) from e
    finally:
        duration_ms = round((time.monotonic() - start) * 1000, 2)
        logger.debug(
            "%s %s/%s -> %s",
            operation,
            bucket,
            key,
            status,
            extra={"operation": operation, "duration_ms": duration_ms},
        )
        if metrics.store_calls_total is not None:
            metrics.store_calls_total.labels(operation=operation, status=status).inc()
