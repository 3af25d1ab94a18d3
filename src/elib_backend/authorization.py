"""
Caller identity and ownership checks.
"""

from __future__ import annotations

import hmac
from typing import Optional

from .errors import ForbiddenError
from .key_manager import KeyManager
from .models import Book


def resolve_identity(api_key: Optional[str], key_manager: KeyManager) -> Optional[str]:
    """Return the owner id bound to an API key, or None if the key is unknown or revoked."""
    if not api_key:
        return None
    record = key_manager.validate_key(api_key)
    return record.owner if record else None


def is_admin_key(api_key: Optional[str], admin_key: str) -> bool:
    if not api_key or not admin_key:
        return False
    return hmac.compare_digest(api_key.encode(), admin_key.encode())


def ensure_owner(book: Book, requester_id: str, action: str) -> None:
    """
    Raise unless ``requester_id`` created ``book``.

    Raises:
        ForbiddenError: On ownership mismatch; nothing has been mutated yet.
    """
    if book.owner_id != requester_id:
        raise ForbiddenError(f"You can not {action} other book.")
