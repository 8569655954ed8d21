import hashlib
import logging
from typing import Optional


def fingerprint(description: str, location: str, dom_snapshot: str) -> str:
    """SHA-256 hex digest of ``description|location|dom_snapshot``.

    The snapshot is hashed whole: truncating it would let different pages
    share a key.
    """
    content = f"{description}|{location}|{dom_snapshot}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def safe_fingerprint(description: str, location: str, dom_snapshot: str) -> Optional[str]:
    """Like :func:`fingerprint`, but returns None instead of raising.

    A None key is a guaranteed cache miss for the caller.
    """
    try:
        return fingerprint(description, location, dom_snapshot)
    except Exception as e:
        logging.error(f"Failed to compute step fingerprint: {e}")
        return None
