"""Error taxonomy for s3overwrite.

Every error raised by the overwrite entry points is an ``OverwriteError``
subclass. The subclass names the phase that failed, so a caller can tell
"nothing changed" apart from "content changed, permissions stale".
"""


class OverwriteError(Exception):
    """An overwrite failure tied to one object and one phase.

    Attributes:
        bucket: The bucket of the object being overwritten.
        key: The object key.
        operation: The store operation or step that failed (e.g. "GetObjectAcl").
        code: The store's error code when one was reported, else "".
        message: Human-readable error description.
        content_updated: True when the object's content was replaced before
            the failure happened.
    """

    content_updated = False

    def __init__(
        self,
        message: str,
        bucket: str = "",
        key: str = "",
        operation: str = "",
        code: str = "",
    ) -> None:
        """Initialize the overwrite error.

        Args:
            message: Error description.
            bucket: Bucket name.
            key: Object key.
            operation: Failing operation name.
            code: Store error code, if any.
        """
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.key = key
        self.operation = operation
        self.code = code

    def __str__(self) -> str:
        where = f"{self.bucket}/{self.key}" if self.bucket or self.key else ""
        parts = [p for p in (self.operation, where) if p]
        prefix = f"[{' '.join(parts)}] " if parts else ""
        suffix = f" ({self.code})" if self.code else ""
        return f"{prefix}{self.message}{suffix}"


# -- Phase errors -------------------------------------------------------------


class FetchError(OverwriteError):
    """Reading the object, its tags, or its ACL failed.

    The stored object is unchanged.
    """


class CallbackError(OverwriteError):
    """The transform raised or returned an unusable decision.

    No write was attempted; the stored object is unchanged.
    """


class WriteError(OverwriteError):
    """The PutObject call failed after a successful transform.

    S3 replaces objects atomically, so the object normally still holds its
    previous content and attributes.
    """


class PermissionRestoreError(OverwriteError):
    """PutObject succeeded but restoring the WRITE grant failed.

    The content and descriptive attributes are already replaced; the ACL
    lacks the original WRITE grant(s). The write is not rolled back.
    """

    content_updated = True
