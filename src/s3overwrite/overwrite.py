"""Attribute-preserving overwrite of S3 objects.

PutObject replaces an object wholesale: any header, tag or grant not sent
with the new content is lost. The entry points here snapshot the object,
hand the local copy to a caller-supplied transform, and write the result
back with the original attributes.

State machine (one instance per call)::

    FETCHING -> DECIDING -> SKIPPED
    FETCHING -> DECIDING -> GATHERING_ATTRIBUTES -> WRITING
             [-> RESTORING_WRITE_GRANT] -> DONE

Any non-terminal state can move to FAILED. Store calls are issued one at a
time with no retry; the local copy is removed on every exit path.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from s3overwrite import metrics
from s3overwrite.client import ObjectStoreClient, store_call
from s3overwrite.errors import (
    CallbackError,
    FetchError,
    OverwriteError,
    PermissionRestoreError,
    WriteError,
)
from s3overwrite.grants import (
    WriteOnly,
    WritePlan,
    WriteThenRestorePermissions,
    canned_acl_plan,
    grants_from_response,
    plan_write,
)
from s3overwrite.models import ObjectSnapshot, OverwriteDecision, Transform
from s3overwrite.snapshot import fetch_snapshot, remove_file
from s3overwrite.tagging import build_tagging_string, tags_from_response

logger = logging.getLogger(__name__)


class OverwriteState(str, Enum):
    """Protocol states of a single overwrite."""

    FETCHING = "fetching"
    DECIDING = "deciding"
    SKIPPED = "skipped"
    GATHERING_ATTRIBUTES = "gathering_attributes"
    WRITING = "writing"
    RESTORING_WRITE_GRANT = "restoring_write_grant"
    DONE = "done"
    FAILED = "failed"


class OverwriteOutcome(str, Enum):
    """How a successful overwrite ended."""

    SKIPPED = "skipped"
    WRITTEN = "written"
    WRITTEN_AND_RESTORED = "written_and_restored"


# PutObject field -> snapshot attribute, carried forward unconditionally.
_CARRIED_ATTRIBUTES = (
    ("ContentType", "content_type"),
    ("CacheControl", "cache_control"),
    ("ContentDisposition", "content_disposition"),
    ("ContentEncoding", "content_encoding"),
    ("ContentLanguage", "content_language"),
    ("WebsiteRedirectLocation", "website_redirect_location"),
    ("StorageClass", "storage_class"),
    ("Expires", "expires"),
)

_MODE_PRESERVE = "preserve-acl"
_MODE_CANNED = "canned-acl"


def build_put_object_request(
    snapshot: ObjectSnapshot,
    metadata: Mapping[str, str],
    plan: WritePlan,
    tagging: str = "",
) -> dict[str, Any]:
    """Build the PutObject fields (everything except Bucket, Key and Body).

    Attributes the snapshot does not have are left out rather than sent
    empty, as are empty metadata and an empty tagging string.
    """
    request: dict[str, Any] = {}
    for field_name, attr in _CARRIED_ATTRIBUTES:
        value = getattr(snapshot, attr)
        if value is not None:
            request[field_name] = value
    if metadata:
        request["Metadata"] = dict(metadata)
    if tagging:
        request["Tagging"] = tagging
    request.update(plan.acl_fields)
    return request


def build_put_object_acl_request(plan: WriteThenRestorePermissions) -> dict[str, Any]:
    """Build the PutObjectAcl fields that restore the full grant set."""
    return dict(plan.restore_fields)


def _same_file(a: Path, b: Path) -> bool:
    return a.resolve() == b.resolve()


class _Overwrite:
    """One run of the overwrite protocol for one object."""

    def __init__(
        self,
        client: ObjectStoreClient,
        bucket: str,
        key: str,
        transform: Transform,
        *,
        canned_plan: WriteOnly | None = None,
        temp_dir: str | Path | None = None,
        call_timeout: float | None = None,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.key = key
        self.transform = transform
        self.canned_plan = canned_plan
        self.temp_dir = temp_dir
        self.call_timeout = call_timeout
        self.mode = _MODE_CANNED if canned_plan is not None else _MODE_PRESERVE
        self.state = OverwriteState.FETCHING

    def _transition(self, state: OverwriteState) -> None:
        logger.debug(
            "%s/%s: %s -> %s",
            self.bucket,
            self.key,
            self.state.value,
            state.value,
            extra={"bucket": self.bucket, "key": self.key, "state": state.value},
        )
        self.state = state

    async def _call(
        self,
        method: Any,
        operation: str,
        error_cls: type[OverwriteError],
        **kwargs: Any,
    ) -> dict[str, Any]:
        return await store_call(
            method,
            operation=operation,
            error_cls=error_cls,
            bucket=self.bucket,
            key=self.key,
            timeout=self.call_timeout,
            **kwargs,
        )

    async def run(self) -> OverwriteOutcome:
        start = time.monotonic()
        try:
            outcome = await self._run()
        except OverwriteError as e:
            failed_in = self.state
            self._transition(OverwriteState.FAILED)
            logger.warning(
                "Overwrite of %s/%s failed while %s: %s",
                self.bucket,
                self.key,
                failed_in.value,
                e,
                extra={"bucket": self.bucket, "key": self.key, "state": failed_in.value},
            )
            self._record(type(e).__name__)
            raise

        logger.info(
            "Overwrite of %s/%s finished: %s",
            self.bucket,
            self.key,
            outcome.value,
            extra={
                "bucket": self.bucket,
                "key": self.key,
                "state": self.state.value,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        self._record(outcome.value)
        return outcome

    def _record(self, outcome: str) -> None:
        if metrics.overwrites_total is not None:
            metrics.overwrites_total.labels(mode=self.mode, outcome=outcome).inc()

    async def _run(self) -> OverwriteOutcome:
        async with fetch_snapshot(
            self.client,
            self.bucket,
            self.key,
            temp_dir=self.temp_dir,
            call_timeout=self.call_timeout,
        ) as (snapshot, local_path):
            self._transition(OverwriteState.DECIDING)
            decision = await self._decide(snapshot, local_path)
            if decision.skipped:
                self._transition(OverwriteState.SKIPPED)
                return OverwriteOutcome.SKIPPED

            replacement = decision.path
            # The local copy is released by fetch_snapshot, never here.
            dispose = decision.remove_after_write and not _same_file(replacement, local_path)
            try:
                metadata = snapshot.metadata if decision.metadata is None else decision.metadata
                return await self._write(snapshot, replacement, metadata)
            finally:
                if dispose:
                    remove_file(replacement)

    async def _decide(self, snapshot: ObjectSnapshot, local_path: Path) -> OverwriteDecision:
        try:
            result = self.transform(snapshot, local_path)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise CallbackError(
                f"transform failed: {e}", bucket=self.bucket, key=self.key, operation="transform"
            ) from e

        if result is None:
            return OverwriteDecision.skip()
        if not isinstance(result, OverwriteDecision):
            raise CallbackError(
                f"transform returned {type(result).__name__}, expected OverwriteDecision",
                bucket=self.bucket,
                key=self.key,
                operation="transform",
            )
        if not result.skipped and not result.path.is_file():
            raise CallbackError(
                f"replacement file does not exist: {result.path}",
                bucket=self.bucket,
                key=self.key,
                operation="transform",
            )
        return result

    async def _fetch_tagging(self, snapshot: ObjectSnapshot) -> str:
        # A missing or zero tag count is trusted and the fetch skipped.
        if not snapshot.tag_count:
            return ""
        resp = await self._call(self.client.get_object_tagging, "GetObjectTagging", FetchError)
        try:
            tags = tags_from_response(resp.get("TagSet"))
        except (AttributeError, KeyError, TypeError) as e:
            raise FetchError(
                f"malformed tag set: {e}",
                bucket=self.bucket,
                key=self.key,
                operation="GetObjectTagging",
            ) from e
        return build_tagging_string(tags)

    async def _fetch_plan(self) -> WritePlan:
        if self.canned_plan is not None:
            return self.canned_plan
        resp = await self._call(self.client.get_object_acl, "GetObjectAcl", FetchError)
        try:
            grants = grants_from_response(resp.get("Grants"))
        except (AttributeError, TypeError, ValueError) as e:
            raise FetchError(
                f"malformed ACL: {e}", bucket=self.bucket, key=self.key, operation="GetObjectAcl"
            ) from e
        return plan_write(grants)

    async def _write(
        self, snapshot: ObjectSnapshot, replacement: Path, metadata: Mapping[str, str]
    ) -> OverwriteOutcome:
        self._transition(OverwriteState.GATHERING_ATTRIBUTES)
        tagging = await self._fetch_tagging(snapshot)
        plan = await self._fetch_plan()

        self._transition(OverwriteState.WRITING)
        request = build_put_object_request(snapshot, metadata, plan, tagging)
        try:
            body = open(replacement, "rb")
        except OSError as e:
            raise WriteError(
                f"failed to open replacement file: {e}",
                bucket=self.bucket,
                key=self.key,
                operation="PutObject",
            ) from e
        with body:
            await self._call(self.client.put_object, "PutObject", WriteError, Body=body, **request)
        if metrics.bytes_uploaded_total is not None:
            metrics.bytes_uploaded_total.inc(replacement.stat().st_size)

        outcome = OverwriteOutcome.WRITTEN
        if isinstance(plan, WriteThenRestorePermissions):
            self._transition(OverwriteState.RESTORING_WRITE_GRANT)
            await self._call(
                self.client.put_object_acl,
                "PutObjectAcl",
                PermissionRestoreError,
                **build_put_object_acl_request(plan),
            )
            outcome = OverwriteOutcome.WRITTEN_AND_RESTORED

        self._transition(OverwriteState.DONE)
        return outcome


async def overwrite_preserving_acl(
    client: ObjectStoreClient,
    bucket: str,
    key: str,
    transform: Transform,
    *,
    temp_dir: str | Path | None = None,
    call_timeout: float | None = None,
) -> OverwriteOutcome:
    """Overwrite an object, keeping its headers, metadata, tags and ACL.

    The transform receives the object's snapshot and the path of a local
    copy of its content, and returns an ``OverwriteDecision`` (or None to
    leave the object alone). When the original ACL holds WRITE grants they
    are restored with a PutObjectAcl call after the write.

    Args:
        client: The object store client.
        bucket: The bucket name.
        key: The object key.
        transform: Decides on and produces the replacement content.
        temp_dir: Directory for the local copy (system default if None).
        call_timeout: Seconds allowed per store call (unbounded if None).

    Returns:
        The outcome of the overwrite.

    Raises:
        FetchError: Reading the object, its tags or its ACL failed.
        CallbackError: The transform failed; nothing was written.
        WriteError: PutObject failed.
        PermissionRestoreError: Content was written but WRITE grants were
            not restored.
    """
    return await _Overwrite(
        client, bucket, key, transform, temp_dir=temp_dir, call_timeout=call_timeout
    ).run()


async def overwrite_with_simple_acl(
    client: ObjectStoreClient,
    bucket: str,
    key: str,
    canned_acl: str,
    transform: Transform,
    *,
    temp_dir: str | Path | None = None,
    call_timeout: float | None = None,
) -> OverwriteOutcome:
    """Overwrite an object with a canned ACL, keeping headers, metadata and tags.

    The existing ACL is neither read nor restored; ``canned_acl`` replaces it.

    Raises:
        ValueError: If ``canned_acl`` is not a known canned ACL (raised
            before any store call).
        FetchError: Reading the object or its tags failed.
        CallbackError: The transform failed; nothing was written.
        WriteError: PutObject failed.
    """
    plan = canned_acl_plan(canned_acl)
    return await _Overwrite(
        client,
        bucket,
        key,
        transform,
        canned_plan=plan,
        temp_dir=temp_dir,
        call_timeout=call_timeout,
    ).run()
