"""s3overwrite - replace S3 object content without losing its attributes."""

from s3overwrite.errors import (
    CallbackError,
    FetchError,
    OverwriteError,
    PermissionRestoreError,
    WriteError,
)
from s3overwrite.models import Grant, ObjectSnapshot, OverwriteDecision, Permission, Tag
from s3overwrite.overwrite import (
    OverwriteOutcome,
    OverwriteState,
    overwrite_preserving_acl,
    overwrite_with_simple_acl,
)

__version__ = "0.1.0"

__all__ = [
    "CallbackError",
    "FetchError",
    "Grant",
    "ObjectSnapshot",
    "OverwriteDecision",
    "OverwriteError",
    "OverwriteOutcome",
    "OverwriteState",
    "Permission",
    "PermissionRestoreError",
    "Tag",
    "WriteError",
    "overwrite_preserving_acl",
    "overwrite_with_simple_acl",
]
