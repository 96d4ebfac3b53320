from __future__ import annotations

import json
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from mytunes.config import AuthConfig
from mytunes.auth.models import Principal, Role


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-mytunes_session" if cfg.cookie_secure else "mytunes_session"


SESSION_SALT = "mytunes-session-v1"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, principal: Principal) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    payload = {"id": principal.id, "role": principal.role.value, "username": principal.username}
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[Principal]:
    if not value:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        user_id = data.get("id")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            return None
        # Unknown roles raise ValueError -> treated as an invalid session.
        role = Role(str(data.get("role") or ""))
        username = data.get("username")
        return Principal(id=user_id, role=role, username=str(username) if username else None)
    except (BadSignature, BadTimeSignature, ValueError):
        return None


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
