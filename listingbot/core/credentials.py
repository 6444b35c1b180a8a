"""Marketplace API credential formatting.

The marketplace authenticates every call with an HTTP ``Basic`` credential
derived from a configured identifier/secret pair.  The value is built once at
startup and reused for the life of the process.
"""

from __future__ import annotations

import base64

from listingbot.core.exceptions import ConfigError

__all__ = ["build_basic_auth"]


def build_basic_auth(identifier: str, secret: str) -> str:
    """Return the ``Authorization`` header value for *identifier*/*secret*.

    Args:
        identifier: Marketplace API user name.
        secret: Marketplace API password.

    Returns:
        ``"Basic <base64(identifier:secret)>"``.

    Raises:
        ConfigError: If the identifier is empty or contains ``:`` (which would
            make the encoded pair ambiguous), or if the secret is empty.
    """
    if not identifier:
        raise ConfigError("Marketplace identifier must not be empty (set MARKETPLACE_USERNAME).")
    if ":" in identifier:
        raise ConfigError("Marketplace identifier must not contain ':'.")
    if not secret:
        raise ConfigError("Marketplace secret must not be empty (set MARKETPLACE_PASSWORD).")

    token = base64.b64encode(f"{identifier}:{secret}".encode()).decode("ascii")
    return f"Basic {token}"
