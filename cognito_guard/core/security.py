"""
Security utilities for JWT parsing ahead of signature verification.

These helpers read the compact serialization without trusting it. They are
used to pick the verification key and to reject malformed tokens before any
network round trip to the identity provider.
"""

import binascii
import json
from typing import Any, Dict, List

from jwt.utils import base64url_decode

from cognito_guard.core.exceptions import InvalidTokenError


def split_compact_token(token: str) -> List[str]:
    """
    Split a compact JWT into its header, payload and signature segments.

    Raises:
        InvalidTokenError: If the token does not have exactly three segments
    """
    segments = token.split(".")
    if len(segments) != 3:
        raise InvalidTokenError("Wrong number of segments")
    return segments


def get_unverified_jwt_header(token: str) -> Dict[str, Any]:
    """
    Extract the JWT header without verification.

    Used to get 'kid' (key ID) and 'alg' (algorithm) for signature
    verification. This is safe to use before verification to determine which
    key to use, but nothing in the header may be trusted yet.

    Args:
        token: JWT token string (format: header.payload.signature)

    Returns:
        Decoded JWT header dictionary containing fields like 'kid', 'alg', 'typ'

    Raises:
        InvalidTokenError: If the token has the wrong shape or the header
            cannot be base64url/JSON decoded

    Example:
        >>> header = get_unverified_jwt_header(token)
        >>> key_id = header['kid']
    """
    header_segment = split_compact_token(token)[0]

    try:
        header = json.loads(base64url_decode(header_segment.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        # json.JSONDecodeError is a ValueError subclass
        raise InvalidTokenError(f"Invalid header encoding: {e}") from e

    if not isinstance(header, dict):
        raise InvalidTokenError("Invalid header encoding")

    return header
