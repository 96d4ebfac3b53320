"""
MyTunes HTTP API.

Session-authenticated JSON endpoints for user accounts and personal playlists.
Route handlers stay thin: look up rows, ask `mytunes.authz.policy` for a
decision, map the decision to a status code.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional

import psycopg
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from mytunes.auth.deps import authenticate_request, require_principal
from mytunes.auth.models import Principal
from mytunes.authz.policy import (
    Allowed,
    Decision,
    Denied,
    NotFound,
    can_create_playlist,
    can_delete_playlist,
    can_list_playlists,
    can_list_users,
    can_read_playlist,
)
from mytunes.core.models import PlaylistCreateRequest
from mytunes.db import playlists as playlist_store

logger = logging.getLogger(__name__)

app = FastAPI(title="MyTunes")


def _is_public_path(path: str) -> bool:
    if path == "/healthz":
        return True
    # Account creation and login must be reachable without a session.
    if path in ("/api/auth/register", "/api/auth/login"):
        return True
    # Allow logout even if the cookie is already missing/invalid.
    if path == "/api/auth/logout":
        return True
    return False


def _get_db_connection():
    """Get a Postgres connection, or return None if not configured/unreachable."""
    from mytunes.config import load_db_config

    dsn = load_db_config().dsn
    if not dsn:
        return None
    try:
        return psycopg.connect(dsn)
    except psycopg.OperationalError as e:
        logger.warning("Failed to connect to Postgres: %s", str(e))
        return None


def _require_db():
    conn = _get_db_connection()
    if not conn:
        raise HTTPException(status_code=503, detail="Database not configured")
    return conn


def _raise_for_decision(decision: Decision) -> None:
    if isinstance(decision, NotFound):
        raise HTTPException(status_code=404, detail="Playlist not found")
    if isinstance(decision, Denied):
        raise HTTPException(status_code=403, detail=decision.reason)


def _parse_playlist_id(raw: str) -> Optional[int]:
    # Only plain ASCII digits name a row; anything else is treated as missing.
    raw = str(raw)
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


def _user_payload(principal: Principal) -> Dict[str, Any]:
    return {"id": principal.id, "username": principal.username, "role": principal.role.value}


@app.on_event("startup")
def _startup_maybe_migrate_db() -> None:
    """
    Auto-apply DB migrations when DB_AUTO_MIGRATE=1.

    Never prevents the server from starting; failures are logged.
    """
    from mytunes.db.migrate import maybe_auto_migrate

    did_attempt, msg = maybe_auto_migrate()
    if did_attempt:
        logger.info("DB migrations: %s", msg)


@app.on_event("startup")
def _startup_initialize_admin_user() -> None:
    """
    Create the bootstrap admin account if configured.

    Never prevents the server from starting; failures are logged.
    """
    from mytunes.config import load_auth_config
    from mytunes.auth.local import initialize_admin_user

    cfg = load_auth_config()
    if not (cfg.admin_initial_username and cfg.admin_initial_password):
        return
    conn = _get_db_connection()
    if not conn:
        logger.warning("Cannot initialize admin user: database not configured")
        return
    try:
        initialize_admin_user(conn, cfg.admin_initial_username, cfg.admin_initial_password)
        logger.info("Admin user initialization check completed")
    except Exception as e:
        logger.warning("Admin user initialization failed: %s", str(e))
    finally:
        conn.close()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request and enforce the session on non-public paths."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        path = request.url.path or ""

        if request.method != "OPTIONS" and not _is_public_path(path):
            principal = authenticate_request(request)
            if principal is None:
                # No WWW-Authenticate: browsers would pop a basic-auth modal over the login UI.
                return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
            request.state.user = principal

        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


# ---- Accounts ----


@app.post("/api/auth/register")
def auth_register(credentials: Dict[str, str]) -> Dict[str, Any]:
    """Self-registration. New accounts are always guests."""
    from mytunes.auth.local import password_too_long, register_user

    username = (credentials.get("username") or "").strip()
    password = credentials.get("password") or ""
    if not username or not password:
        raise HTTPException(status_code=400, detail="Missing username or password")
    if password_too_long(password):
        raise HTTPException(status_code=400, detail="Password too long")

    conn = _require_db()
    try:
        user = register_user(conn, username, password)
    except psycopg.errors.UniqueViolation:
        raise HTTPException(status_code=409, detail="Username already taken")
    finally:
        conn.close()

    logger.info("Registered user %s (id=%d)", user.username, user.id)
    return {"ok": True, "user": _user_payload(user.to_principal())}


@app.post("/api/auth/login")
def auth_login(credentials: Dict[str, str]) -> JSONResponse:
    """
    Username/password login.
    Rate-limited per username to slow down brute force attempts.
    """
    from mytunes.config import load_auth_config
    from mytunes.auth.local import authenticate_local
    from mytunes.auth.rate_limit import get_login_throttle
    from mytunes.auth.session import encode_session, session_cookie_kwargs

    cfg = load_auth_config()
    username = (credentials.get("username") or "").strip()
    password = credentials.get("password") or ""
    if not username or not password:
        raise HTTPException(status_code=400, detail="Missing username or password")
    if not cfg.sessions_enabled:
        raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")

    throttle = get_login_throttle()
    allowed, remaining = throttle.check_and_increment(username)
    if not allowed:
        raise HTTPException(status_code=429, detail="Too many failed login attempts. Please try again later.")

    conn = _require_db()
    try:
        principal = authenticate_local(conn, username, password)
    finally:
        conn.close()

    if principal is None:
        raise HTTPException(status_code=401, detail=f"Invalid username or password ({remaining} attempts remaining)")

    throttle.reset(username)

    session_value = encode_session(cfg, principal)
    if not session_value:
        raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")

    resp = JSONResponse(content={"ok": True, "user": _user_payload(principal)})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, session_value))
    return resp


@app.post("/api/auth/logout")
async def auth_logout() -> JSONResponse:
    from mytunes.config import load_auth_config
    from mytunes.auth.session import clear_session_cookie_kwargs

    cfg = load_auth_config()
    resp = JSONResponse(content={"ok": True})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**clear_session_cookie_kwargs(cfg))
    return resp


@app.get("/api/auth/me")
async def auth_me(request: Request) -> Dict[str, Any]:
    return {"ok": True, "user": _user_payload(require_principal(request))}


@app.get("/admin/users")
def admin_list_users(request: Request) -> List[Dict[str, Any]]:
    from mytunes.auth.local import list_users

    principal = require_principal(request)
    _raise_for_decision(can_list_users(principal))

    conn = _require_db()
    try:
        users = list_users(conn)
    except psycopg.Error:
        logger.exception("Error retrieving users")
        raise HTTPException(status_code=500, detail="Error retrieving users")
    finally:
        conn.close()
    return [{"id": u.id, "username": u.username, "role": u.role.value} for u in users]


# ---- Playlists ----


@app.get("/api/playlists")
def list_playlists(request: Request) -> List[Dict[str, Any]]:
    """Admins see every playlist with its owner's username; guests see their own."""
    principal = require_principal(request)
    scope = can_list_playlists(principal)

    conn = _require_db()
    try:
        rows = playlist_store.list_playlists(conn, scope)
    except psycopg.Error:
        logger.exception("Error fetching playlists")
        raise HTTPException(status_code=500, detail="Error fetching playlists")
    finally:
        conn.close()
    return [r.model_dump(exclude_none=True) for r in rows]


@app.post("/api/playlists")
def create_playlist(request: Request, req: PlaylistCreateRequest) -> Dict[str, Any]:
    principal = require_principal(request)
    _raise_for_decision(can_create_playlist(principal))

    conn = _require_db()
    try:
        new_id = playlist_store.create_playlist(conn, owner_id=principal.id, name=req.name, songs=req.songs)
    except psycopg.Error:
        logger.exception("Error saving playlist")
        raise HTTPException(status_code=500, detail="Error saving playlist")
    finally:
        conn.close()

    logger.info("User %d created playlist %d", principal.id, new_id)
    return {"id": new_id}


@app.get("/api/playlist/{playlist_id}")
def get_playlist(request: Request, playlist_id: str) -> Dict[str, Any]:
    principal = require_principal(request)
    pid = _parse_playlist_id(playlist_id)

    playlist = None
    if pid is not None:
        conn = _require_db()
        try:
            playlist = playlist_store.get_playlist(conn, pid, owner_id=principal.id)
        except psycopg.Error:
            logger.exception("Error fetching playlist %s", playlist_id)
            raise HTTPException(status_code=404, detail="Playlist not found")
        finally:
            conn.close()

    decision = can_read_playlist(principal, playlist)
    if not isinstance(decision, Allowed) or decision.playlist is None:
        raise HTTPException(status_code=404, detail="Playlist not found")
    return decision.playlist.to_api()


@app.delete("/api/playlist/{playlist_id}")
def delete_playlist(request: Request, playlist_id: str) -> Dict[str, Any]:
    principal = require_principal(request)
    pid = _parse_playlist_id(playlist_id)
    if pid is None:
        _raise_for_decision(can_delete_playlist(principal, None))

    conn = _require_db()
    try:
        try:
            playlist = playlist_store.get_playlist(conn, pid)
        except psycopg.Error:
            logger.exception("Error fetching playlist %s", playlist_id)
            raise HTTPException(status_code=404, detail="Playlist not found")

        _raise_for_decision(can_delete_playlist(principal, playlist))

        try:
            playlist_store.delete_playlist(conn, pid)
        except psycopg.Error:
            logger.exception("Failed to delete playlist %s", playlist_id)
            raise HTTPException(status_code=500, detail="Failed to delete playlist")
    finally:
        conn.close()

    logger.info("User %d deleted playlist %d", principal.id, pid)
    return {"success": True}


def run(host: str = "0.0.0.0", port: int = 3000) -> None:
    import uvicorn

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting MyTunes server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
