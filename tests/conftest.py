"""Shared pytest fixtures for s3overwrite tests.

``MemoryObjectStore`` stands in for S3: it implements the five operations
the overwrite protocol uses, with boto-shaped requests and responses, and
records every call so tests can assert on what was (or was not) sent.
Failures are injected per operation through ``store.fail``.
"""

import hashlib
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pytest
from botocore.exceptions import ClientError

ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
AUTHENTICATED_USERS_URI = "http://acs.amazonaws.com/groups/global/AuthenticatedUsers"
OWNER_ID = "owner-canonical-id"

# PutObject / PutObjectAcl grant fields and their permissions
_GRANT_FIELDS = {
    "GrantFullControl": "FULL_CONTROL",
    "GrantRead": "READ",
    "GrantReadACP": "READ_ACP",
    "GrantWrite": "WRITE",
    "GrantWriteACP": "WRITE_ACP",
}

_PUT_OBJECT_ATTRIBUTES = (
    "ContentType",
    "CacheControl",
    "ContentDisposition",
    "ContentEncoding",
    "ContentLanguage",
    "WebsiteRedirectLocation",
    "StorageClass",
    "Expires",
)


def client_error(
    code: str, message: str = "error", operation: str = "TestOperation"
) -> ClientError:
    """Create a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeBody:
    """Minimal stand-in for an aiobotocore StreamingBody."""

    def __init__(self, data: bytes, fail_after: int | None = None) -> None:
        self._data = data
        self._pos = 0
        self._fail_after = fail_after
        self.closed = False

    async def read(self, amt: int = -1) -> bytes:
        if self._fail_after is not None and self._pos >= self._fail_after:
            raise ConnectionResetError("connection reset while reading body")
        if amt < 0:
            amt = len(self._data) - self._pos
        if self._fail_after is not None:
            amt = min(amt, self._fail_after - self._pos)
        chunk = self._data[self._pos : self._pos + amt]
        self._pos += len(chunk)
        return chunk

    async def __aenter__(self) -> "FakeBody":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        self.closed = True
        return False


def _grantee_dict(entry: str) -> dict[str, str]:
    """Parse one ``id="..."`` / ``uri="..."`` / ``emailaddress="..."`` entry."""
    kind, _, value = entry.strip().partition("=")
    value = value.strip('"')
    kind = kind.lower()
    if kind == "id":
        return {"Type": "CanonicalUser", "ID": value}
    if kind == "uri":
        return {"Type": "Group", "URI": value}
    if kind == "emailaddress":
        return {"Type": "AmazonCustomerByEmail", "EmailAddress": value}
    raise ValueError(f"bad grantee: {entry}")


def grants_from_fields(fields: dict[str, Any]) -> list[dict[str, Any]]:
    grants = []
    for field_name, permission in _GRANT_FIELDS.items():
        value = fields.get(field_name)
        if not value:
            continue
        for entry in value.split(","):
            grants.append({"Grantee": _grantee_dict(entry), "Permission": permission})
    return grants


def canned_grants(acl: str) -> list[dict[str, Any]]:
    owner = {
        "Grantee": {"Type": "CanonicalUser", "ID": OWNER_ID},
        "Permission": "FULL_CONTROL",
    }
    grants = [owner]
    if acl in ("public-read", "public-read-write"):
        grants.append({"Grantee": {"Type": "Group", "URI": ALL_USERS_URI}, "Permission": "READ"})
    if acl == "public-read-write":
        grants.append({"Grantee": {"Type": "Group", "URI": ALL_USERS_URI}, "Permission": "WRITE"})
    if acl == "authenticated-read":
        grants.append(
            {"Grantee": {"Type": "Group", "URI": AUTHENTICATED_USERS_URI}, "Permission": "READ"}
        )
    return grants


@dataclass
class StoredObject:
    data: bytes
    attributes: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)
    tags: list[tuple[str, str]] = field(default_factory=list)
    grants: list[dict[str, Any]] = field(default_factory=lambda: canned_grants("private"))
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # Tag count reported by GetObject; None means "report the real count".
    reported_tag_count: int | None = None


class MemoryObjectStore:
    """In-memory object store speaking the boto S3 request/response shapes."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], StoredObject] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail: dict[str, BaseException] = {}
        self.body_fail_after: int | None = None

    # -- helpers --------------------------------------------------------------

    def add(self, bucket: str, key: str, data: bytes, **kwargs: Any) -> StoredObject:
        obj = StoredObject(data=data, **kwargs)
        self.objects[(bucket, key)] = obj
        return obj

    def get(self, bucket: str, key: str) -> StoredObject:
        return self.objects[(bucket, key)]

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]

    def requests(self, operation: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == operation]

    def _enter(self, operation: str, kwargs: dict[str, Any]) -> StoredObject:
        self.calls.append((operation, kwargs))
        if operation in self.fail:
            raise self.fail[operation]
        obj = self.objects.get((kwargs["Bucket"], kwargs["Key"]))
        if obj is None:
            raise client_error("NoSuchKey", "The specified key does not exist.", operation)
        return obj

    # -- store operations -----------------------------------------------------

    async def get_object(self, **kwargs: Any) -> dict[str, Any]:
        obj = self._enter("GetObject", kwargs)
        tag_count = obj.reported_tag_count
        if tag_count is None:
            tag_count = len(obj.tags)
        resp: dict[str, Any] = {
            "Body": FakeBody(obj.data, fail_after=self.body_fail_after),
            "ContentLength": len(obj.data),
            "ETag": f'"{hashlib.md5(obj.data).hexdigest()}"',
            "LastModified": obj.last_modified,
            "Metadata": dict(obj.metadata),
        }
        resp.update(obj.attributes)
        if tag_count:
            resp["TagCount"] = tag_count
        return resp

    async def get_object_tagging(self, **kwargs: Any) -> dict[str, Any]:
        obj = self._enter("GetObjectTagging", kwargs)
        return {"TagSet": [{"Key": k, "Value": v} for k, v in obj.tags]}

    async def get_object_acl(self, **kwargs: Any) -> dict[str, Any]:
        obj = self._enter("GetObjectAcl", kwargs)
        return {
            "Owner": {"ID": OWNER_ID},
            "Grants": [dict(g) for g in obj.grants],
        }

    async def put_object(self, **kwargs: Any) -> dict[str, Any]:
        body = kwargs.get("Body")
        data = body.read() if body is not None else b""
        recorded = dict(kwargs)
        recorded["Body"] = data
        self.calls.append(("PutObject", recorded))
        if "PutObject" in self.fail:
            raise self.fail["PutObject"]
        if "GrantWrite" in kwargs:
            raise ValueError("Unknown parameter in input: GrantWrite")

        if "ACL" in kwargs:
            grants = canned_grants(kwargs["ACL"])
        else:
            grants = grants_from_fields(kwargs)
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = StoredObject(
            data=data,
            attributes={k: kwargs[k] for k in _PUT_OBJECT_ATTRIBUTES if k in kwargs},
            metadata=dict(kwargs.get("Metadata", {})),
            tags=urllib.parse.parse_qsl(kwargs.get("Tagging", ""), keep_blank_values=True),
            grants=grants,
        )
        return {"ETag": f'"{hashlib.md5(data).hexdigest()}"'}

    async def put_object_acl(self, **kwargs: Any) -> dict[str, Any]:
        obj = self._enter("PutObjectAcl", kwargs)
        obj.grants = grants_from_fields(kwargs)
        return {}


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def temp_dir(tmp_path):
    """A private directory for local copies, so leftovers are easy to spot."""
    path = tmp_path / "overwrite-tmp"
    path.mkdir()
    return path
