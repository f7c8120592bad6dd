"""Opaque page tokens for offset-paginated queries.

A token is base64-encoded JSON carrying the result offset of the next
page and a hash of the query it belongs to, so a token cannot be reused
with a different query.
"""

import base64
import binascii
import json

from perseus.common.exceptions import InvalidPageTokenError
from perseus.common.logging import get_logger

logger = get_logger(__name__)

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def fnv1a32(data: bytes) -> int:
    """32-bit FNV-1a hash."""
    h = _FNV32_OFFSET
    for b in data:
        h ^= b
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h


def encode_page_token(key: str, n: int, offset: int, page_size: int) -> str:
    """Build the token for the page after the current one.

    Args:
        key: Identifies the query the results belong to.
        n: Number of results in the current page.
        offset: Offset of the current page.
        page_size: Requested page size.

    Returns:
        Token for the next page, or "" when the current page was not full.
    """
    if n < page_size or page_size <= 0:
        return ""
    payload = json.dumps(
        {"FilterID": fnv1a32(key.encode("utf-8")), "Offset": offset + n},
        separators=(",", ":"),
    )
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_page_token(token: str, key: str) -> int:
    """Extract the offset from a token issued for the query identified by key.

    Raises:
        InvalidPageTokenError: If the token is malformed, carries a negative
            offset or was issued for a different query.
    """
    try:
        data = base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidPageTokenError(
            f"invalid page token: token must be a base64-encoded string: {e}",
            cause=e,
        ) from e
    try:
        tok = json.loads(data)
        filter_id = int(tok["FilterID"])
        offset = int(tok["Offset"])
    except (ValueError, TypeError, KeyError) as e:
        # keep the token opaque to callers
        logger.warning("Error decoding page token contents", error=str(e), token=data[:64].decode("utf-8", "replace"))
        raise InvalidPageTokenError("invalid page token: the token contents were invalid", cause=e) from e

    if filter_id != fnv1a32(key.encode("utf-8")):
        raise InvalidPageTokenError("invalid page token: the provided token was for a different operation")
    if offset < 0:
        raise InvalidPageTokenError("invalid page token: the token contents were invalid")
    return offset
