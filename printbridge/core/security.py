"""Bridge token handling.

The bridge optionally gates requests behind a shared token. The POS sends it
either as ``X-Auth-Token`` or as ``Authorization: Bearer <token>``.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Auth-Token"


def generate_token() -> str:
    """Create a new random bridge token (32 hex characters)."""
    return secrets.token_hex(16)


def extract_token(headers: Mapping[str, str]) -> Optional[str]:
    """Pull the presented token out of request headers.

    ``X-Auth-Token`` wins over the Authorization header when both are sent.
    """
    token = headers.get(TOKEN_HEADER) or headers.get(TOKEN_HEADER.lower())
    if token:
        return token.strip() or None

    auth_header = headers.get("Authorization") or headers.get("authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def verify_token(presented: Optional[str], expected: Optional[str]) -> bool:
    """Timing-safe comparison of the presented token against the expected one."""
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
