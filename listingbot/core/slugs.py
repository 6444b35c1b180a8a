"""Device id extraction from marketplace slugs, and URL path id checks.

Listings are published with a slug whose last hyphen-separated segment is the
fleet device id, e.g. ``"raspberry-pi-rental-5a1b2c3d4e5f"``.  Notifications
for an order carry the same slug, so this is the single link between the
marketplace and the fleet backend.

Every other identifier that ends up in a request path (private record ids,
contract ids, notification ids) comes straight from a backend payload and is
checked with :func:`require_path_segment` before use.
"""

from __future__ import annotations

import re
from typing import Final

from listingbot.core.exceptions import MalformedDataError, MalformedSlugError

__all__ = ["device_id_from_slug", "require_path_segment"]

#: Device ids are opaque alphanumeric tokens (Mongo ObjectIds in practice).
_DEVICE_ID_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9]+")

#: One URL path segment: no separators, query/fragment markers, escapes or whitespace.
_PATH_SEGMENT_RE: Final[re.Pattern[str]] = re.compile(r"[^/?#%\s]+")


def device_id_from_slug(slug: str) -> str:
    """Return the device id encoded as the trailing segment of *slug*.

    >>> device_id_from_slug("rental-abc123")
    'abc123'

    Raises:
        MalformedSlugError: If *slug* has no hyphen, or the trailing segment
            is empty or not alphanumeric.
    """
    _, sep, tail = slug.rpartition("-")
    if not sep or not _DEVICE_ID_RE.fullmatch(tail):
        raise MalformedSlugError(slug)
    return tail


def require_path_segment(value: str, kind: str) -> str:
    """Return *value* unchanged if it can be placed in a URL path as-is.

    Raises:
        MalformedDataError: If *value* is empty or contains ``/``, ``?``,
            ``#``, ``%`` or whitespace.
    """
    if not _PATH_SEGMENT_RE.fullmatch(value):
        raise MalformedDataError(f"Unusable {kind} id in request path: {value!r}")
    return value
