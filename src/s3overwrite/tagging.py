"""Object tag helpers: GetObjectTagging parsing and the PutObject tagging string."""

import urllib.parse
from collections.abc import Iterable, Mapping
from typing import Any

from s3overwrite.models import Tag


def build_tagging_string(tags: Iterable[Tag]) -> str:
    """Encode tags as the ``key=value&key=value`` form PutObject expects.

    Keys and values are percent-encoded (spaces become ``+``), so any
    Unicode survives the round trip. Order follows the input.

    Args:
        tags: Tags to encode.

    Returns:
        The tagging string, or "" for no tags.
    """
    return "&".join(
        f"{urllib.parse.quote_plus(tag.key, safe='')}={urllib.parse.quote_plus(tag.value, safe='')}"
        for tag in tags
    )


def tags_from_response(tag_set: Iterable[Mapping[str, Any]] | None) -> list[Tag]:
    """Parse the ``TagSet`` of a GetObjectTagging response."""
    return [Tag(key=t["Key"], value=t.get("Value", "")) for t in tag_set or []]
