from __future__ import annotations

import logging
from typing import List, Optional

import bcrypt
import psycopg

from mytunes.auth.models import LocalUser, Principal, Role

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes; bcrypt>=5 refuses anything longer.
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    """
    Hash password with bcrypt (cost factor 12).

    Args:
        password: Plain text password

    Returns:
        Bcrypt hash string

    Raises:
        ValueError: password is longer than MAX_PASSWORD_BYTES
    """
    if password_too_long(password):
        raise ValueError("Password too long")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _row_to_user(row) -> LocalUser:  # type: ignore[no-untyped-def]
    user_id, username, password_hash, role, created_at = row
    return LocalUser(
        id=int(user_id),
        username=username,
        password_hash=password_hash,
        role=Role(role),
        created_at=created_at,
    )


def authenticate_local(conn: psycopg.Connection, username: str, password: str) -> Optional[Principal]:
    """
    Authenticate a user with username/password.

    Args:
        conn: PostgreSQL connection
        username: Username
        password: Plain text password

    Returns:
        Principal if authentication succeeds, None otherwise
    """
    user = get_user_by_username(conn, username)
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user.to_principal()


def register_user(conn: psycopg.Connection, username: str, password: str) -> LocalUser:
    """
    Create a new guest account.

    Self-registration never grants admin; admins come from the bootstrap path only.

    Raises:
        psycopg.errors.UniqueViolation: If the username is already taken
    """
    password_hash = hash_password(password)

    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO users (username, password_hash, role)
            VALUES (%s, %s, %s)
            RETURNING id, username, password_hash, role, created_at
            """,
            (username, password_hash, Role.GUEST.value),
        )
        row = cur.fetchone()
        conn.commit()

        if not row:
            raise ValueError("Failed to create user")
        return _row_to_user(row)


def initialize_admin_user(conn: psycopg.Connection, username: str, password: str) -> bool:
    """
    Create the bootstrap admin account if it does not exist yet.

    Returns True when a row was inserted, False when skipped (not configured
    or the username already exists).
    """
    if not username or not password:
        return False

    password_hash = hash_password(password)
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO users (username, password_hash, role)
            VALUES (%s, %s, %s)
            ON CONFLICT (username) DO NOTHING
            """,
            (username, password_hash, Role.ADMIN.value),
        )
        inserted = cur.rowcount == 1
        conn.commit()

    if inserted:
        logger.info("Created admin user %s", username)
    return inserted


def get_user_by_username(conn: psycopg.Connection, username: str) -> Optional[LocalUser]:
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT id, username, password_hash, role, created_at
            FROM users
            WHERE username = %s
            """,
            (username,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return _row_to_user(row)


def list_users(conn: psycopg.Connection) -> List[LocalUser]:
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT id, username, password_hash, role, created_at
            FROM users
            ORDER BY id
            """
        )
        return [_row_to_user(r) for r in cur.fetchall()]
