"""ACL grant helpers for s3overwrite.

Converts the grants returned by GetObjectAcl into the ``x-amz-grant-*``
grantee strings accepted by PutObject and PutObjectAcl, and decides once
per overwrite whether the WRITE grant has to be restored after the write.

PutObject and PutObjectAcl accept different grant fields: ``GrantWrite``
exists only on PutObjectAcl. Each request kind therefore has its own
builder; both share ``build_grant_string``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from s3overwrite.models import Grant, Permission

# Canned ACLs S3 accepts on objects
CANNED_ACLS = frozenset(
    {
        "private",
        "public-read",
        "public-read-write",
        "authenticated-read",
        "aws-exec-read",
        "bucket-owner-read",
        "bucket-owner-full-control",
    }
)

# S3 predefined group URIs
ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
AUTHENTICATED_USERS_URI = "http://acs.amazonaws.com/groups/global/AuthenticatedUsers"

# Request field names per permission, in the order they are built.
_PUT_OBJECT_GRANT_FIELDS = {
    Permission.READ: "GrantRead",
    Permission.READ_ACP: "GrantReadACP",
    Permission.WRITE_ACP: "GrantWriteACP",
    Permission.FULL_CONTROL: "GrantFullControl",
}

_PUT_OBJECT_ACL_GRANT_FIELDS = {
    **_PUT_OBJECT_GRANT_FIELDS,
    Permission.WRITE: "GrantWrite",
}


def _render_grantee(grant: Grant) -> str:
    """Render the grant's single identifier in grantee-string form."""
    if grant.canonical_id is not None:
        return f'id="{grant.canonical_id}"'
    if grant.uri is not None:
        return f'uri="{grant.uri}"'
    return f'emailaddress="{grant.email_address}"'


def build_grant_string(grants: Iterable[Grant], permission: Permission | str) -> str:
    """Build the comma-separated grantee string for one permission.

    Args:
        grants: Grants in the order the store returned them.
        permission: The permission to select.

    Returns:
        e.g. ``id="123",uri="http://acs.amazonaws.com/groups/global/AllUsers"``,
        or "" when no grant has this permission.
    """
    permission = Permission(permission)
    return ",".join(_render_grantee(g) for g in grants if g.permission is permission)


def has_write_grant(grants: Iterable[Grant]) -> bool:
    """Return True if any grant carries the WRITE permission."""
    return any(g.permission is Permission.WRITE for g in grants)


def _grant_fields(grants: list[Grant], field_map: Mapping[Permission, str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for permission, field_name in field_map.items():
        value = build_grant_string(grants, permission)
        if value:
            fields[field_name] = value
    return fields


def put_object_grant_fields(grants: Iterable[Grant]) -> dict[str, str]:
    """Grant fields for a PutObject request.

    WRITE is never included: PutObject has no GrantWrite field.
    Permissions with no grantees are omitted.
    """
    return _grant_fields(list(grants), _PUT_OBJECT_GRANT_FIELDS)


def put_object_acl_grant_fields(grants: Iterable[Grant]) -> dict[str, str]:
    """Grant fields for a PutObjectAcl request, WRITE included."""
    return _grant_fields(list(grants), _PUT_OBJECT_ACL_GRANT_FIELDS)


def grant_from_dict(raw: Mapping[str, Any]) -> Grant | None:
    """Parse one entry of a GetObjectAcl ``Grants`` list.

    Returns:
        The grant, or None when the grantee carries no identifier.

    Raises:
        ValueError: If the permission is not a known S3 permission.
    """
    permission = Permission(raw.get("Permission", ""))
    grantee = raw.get("Grantee") or {}

    # S3 reports one identifier per grantee; prefer the canonical ID.
    if grantee.get("ID"):
        return Grant(
            permission=permission,
            canonical_id=grantee["ID"],
            display_name=grantee.get("DisplayName"),
        )
    if grantee.get("URI"):
        return Grant(permission=permission, uri=grantee["URI"])
    if grantee.get("EmailAddress"):
        return Grant(permission=permission, email_address=grantee["EmailAddress"])
    return None


def grants_from_response(raw_grants: Iterable[Mapping[str, Any]] | None) -> list[Grant]:
    """Parse the ``Grants`` list of a GetObjectAcl response, keeping order."""
    grants: list[Grant] = []
    for raw in raw_grants or []:
        grant = grant_from_dict(raw)
        if grant is not None:
            grants.append(grant)
    return grants


# -- Write plan ---------------------------------------------------------------


@dataclass(frozen=True)
class WriteOnly:
    """A single PutObject carries the whole ACL.

    Attributes:
        acl_fields: ACL-related PutObject fields (grant strings or ``ACL``).
    """

    acl_fields: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WriteThenRestorePermissions:
    """PutObject without WRITE, then PutObjectAcl with the full grant set.

    Attributes:
        acl_fields: Grant fields for the PutObject request.
        restore_fields: Grant fields for the follow-up PutObjectAcl request.
    """

    acl_fields: dict[str, str]
    restore_fields: dict[str, str]


WritePlan = Union[WriteOnly, WriteThenRestorePermissions]


def plan_write(grants: list[Grant]) -> WritePlan:
    """Decide how the original ACL is reproduced on the new object."""
    acl_fields = put_object_grant_fields(grants)
    if has_write_grant(grants):
        return WriteThenRestorePermissions(
            acl_fields=acl_fields,
            restore_fields=put_object_acl_grant_fields(grants),
        )
    return WriteOnly(acl_fields=acl_fields)


def validate_canned_acl(acl: str) -> None:
    """Raise ValueError if ``acl`` is not an object canned ACL."""
    if acl not in CANNED_ACLS:
        raise ValueError(f"Unknown canned ACL: {acl}")


def canned_acl_plan(acl: str) -> WriteOnly:
    """Build the plan for a write that sets a canned ACL.

    Raises:
        ValueError: If the canned ACL name is not recognized.
    """
    validate_canned_acl(acl)
    return WriteOnly(acl_fields={"ACL": acl})
