"""
API key authentication.
"""

import hmac
from typing import Optional

from ..models.query import AccessTier
from .exceptions import AuthenticationError


def _keys_match(expected: str, presented: str) -> bool:
    """Timing-safe comparison of two key strings."""
    return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))


def authenticate_api_key(
    presented: Optional[str],
    api_key: str,
    admin_api_key: str = "",
) -> AccessTier:
    """
    Classify a presented API key into an access tier.

    The admin key is checked first and only when one is configured.
    Raises AuthenticationError for a missing or unknown key; logging the
    failure is left to the caller.
    """
    if not presented:
        raise AuthenticationError("API key required.")

    if admin_api_key and _keys_match(admin_api_key, presented):
        return AccessTier.PRIVILEGED

    if api_key and _keys_match(api_key, presented):
        return AccessTier.STANDARD

    raise AuthenticationError("Invalid API key.")


def mask_key(key: Optional[str]) -> str:
    """Partial key suitable for diagnostics."""
    if not key:
        return "none"
    return key[:8] + "..." if len(key) >= 8 else "invalid"
