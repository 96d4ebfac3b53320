from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from mytunes.config import load_auth_config
from mytunes.auth.models import Principal
from mytunes.auth.session import decode_session, session_cookie_name


def authenticate_request(request: Request) -> Optional[Principal]:
    """Return the session principal for `request`, or None if the cookie is missing/invalid."""
    cfg = load_auth_config()
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))


def require_principal(request: Request) -> Principal:
    # Set by the request middleware; absent only on public paths.
    principal = getattr(request.state, "user", None)
    if not isinstance(principal, Principal):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return principal
