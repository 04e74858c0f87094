"""
Caller identity.

Authentication happens upstream; the identity provider forwards the
authenticated user id in a request header which is trusted as-is.
"""
from typing import Optional

from fastapi import Depends, Request

from config import get_settings
from error_handling import AuthenticationError


def get_optional_user(request: Request) -> Optional[str]:
    """Return the forwarded user id, or None for anonymous callers."""
    user_id = request.headers.get(get_settings().identity_header, "").strip()
    return user_id or None


def get_current_user(user_id: Optional[str] = Depends(get_optional_user)) -> str:
    """Return the forwarded user id or reject the request with 401."""
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return user_id
