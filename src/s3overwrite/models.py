"""Data model types for s3overwrite.

These dataclasses describe the object being overwritten (its snapshot),
the ACL grants and tags preserved across the write, and the decision a
transform hands back to the orchestrator.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Union


class Permission(str, Enum):
    """S3 ACL permission kinds."""

    READ = "READ"
    READ_ACP = "READ_ACP"
    WRITE_ACP = "WRITE_ACP"
    WRITE = "WRITE"
    FULL_CONTROL = "FULL_CONTROL"


@dataclass(frozen=True)
class Grant:
    """A single ACL grant: one permission for one grantee.

    Exactly one of ``canonical_id``, ``uri`` and ``email_address`` must be
    set.

    Attributes:
        permission: The granted permission.
        canonical_id: Canonical user ID of the grantee.
        uri: Group URI of the grantee (e.g. the AllUsers group).
        email_address: Email address of the grantee.
        display_name: Display name reported alongside a canonical ID.
    """

    permission: Permission
    canonical_id: str | None = None
    uri: str | None = None
    email_address: str | None = None
    display_name: str | None = None

    def __post_init__(self) -> None:
        identifiers = [
            v for v in (self.canonical_id, self.uri, self.email_address) if v is not None
        ]
        if len(identifiers) != 1:
            raise ValueError(
                f"A grant needs exactly one grantee identifier, got {len(identifiers)}"
            )
        if not isinstance(self.permission, Permission):
            object.__setattr__(self, "permission", Permission(self.permission))


@dataclass(frozen=True)
class Tag:
    """An object tag."""

    key: str
    value: str


@dataclass(frozen=True)
class ObjectSnapshot:
    """Attributes of an object as returned by GetObject.

    The fetched attributes are frozen. ``metadata`` is a private copy owned
    by the current overwrite; a transform may edit it in place and the
    edits are carried into the write.

    Attributes:
        bucket: The bucket name.
        key: The object key.
        content_type: Content-Type, if any.
        content_length: Size in bytes.
        etag: ETag as reported by the store (quoted).
        last_modified: Last-Modified timestamp.
        metadata: User metadata (x-amz-meta-*) without the prefix.
        storage_class: Storage class; None means STANDARD.
        tag_count: Number of tags the store reported, if it reported any.
        version_id: Version ID on versioned buckets.
        cache_control: Cache-Control, if any.
        content_disposition: Content-Disposition, if any.
        content_encoding: Content-Encoding, if any.
        content_language: Content-Language, if any.
        website_redirect_location: x-amz-website-redirect-location, if any.
        expires: Expires timestamp, if any.
    """

    bucket: str
    key: str
    content_type: str | None = None
    content_length: int | None = None
    etag: str | None = None
    last_modified: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    storage_class: str | None = None
    tag_count: int | None = None
    version_id: str | None = None
    cache_control: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    website_redirect_location: str | None = None
    expires: datetime | None = None


@dataclass(frozen=True)
class OverwriteDecision:
    """What a transform wants written back.

    Attributes:
        path: File holding the replacement content, or None to skip the write.
        remove_after_write: Delete ``path`` once the write phase ends. Ignored
            when ``path`` is the snapshot's own local copy.
        metadata: Metadata to write. None keeps the snapshot's metadata dict
            (including any in-place edits).
    """

    path: Path | None = None
    remove_after_write: bool = False
    metadata: dict[str, str] | None = None

    def __post_init__(self) -> None:
        # Accept str paths; "" means skip, like None.
        if self.path is not None and not isinstance(self.path, Path):
            object.__setattr__(self, "path", Path(self.path) if str(self.path) else None)

    @classmethod
    def skip(cls) -> OverwriteDecision:
        """Return the "do not write" decision."""
        return cls()

    @property
    def skipped(self) -> bool:
        return self.path is None


DecisionResult = Union[OverwriteDecision, None]

# (snapshot, local_copy_path) -> decision; may also be a coroutine function.
Transform = Callable[
    [ObjectSnapshot, Path],
    Union[DecisionResult, Awaitable[DecisionResult]],
]
