"""
Playlist persistence (PostgreSQL).

Each helper runs one parameterized statement on a caller-owned connection.
Authorization is not decided here: callers pass the scope / owner filter the
access policy produced.
"""
from __future__ import annotations

import json
from typing import Any, List, Optional

import psycopg
from psycopg.types.json import Jsonb

from mytunes.authz.policy import AllScope, OwnedScope, ViewScope
from mytunes.core.models import Playlist, PlaylistSummary


def _load_songs(raw: Any) -> List[Any]:
    # jsonb comes back decoded; text columns from older dumps do not.
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    return raw if isinstance(raw, list) else []


def list_playlists(conn: psycopg.Connection, scope: ViewScope) -> List[PlaylistSummary]:
    with conn.cursor() as cur:
        if isinstance(scope, AllScope):
            cur.execute(
                """
                SELECT p.id, p.name, u.username
                FROM playlists p
                JOIN users u ON p.user_id = u.id
                ORDER BY p.id
                """
            )
            return [PlaylistSummary(id=int(r[0]), name=r[1], username=r[2]) for r in cur.fetchall()]

        if isinstance(scope, OwnedScope):
            cur.execute(
                """
                SELECT id, name
                FROM playlists
                WHERE user_id = %s
                ORDER BY id
                """,
                (scope.owner_id,),
            )
            return [PlaylistSummary(id=int(r[0]), name=r[1]) for r in cur.fetchall()]

    raise TypeError(f"Unsupported view scope: {scope!r}")


def create_playlist(conn: psycopg.Connection, *, owner_id: int, name: str, songs: List[Any]) -> int:
    """Insert a playlist owned by `owner_id` and return its new id."""
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO playlists (user_id, name, songs)
            VALUES (%s, %s, %s)
            RETURNING id
            """,
            (owner_id, name, Jsonb(list(songs or []))),
        )
        row = cur.fetchone()
        conn.commit()
    if not row:
        raise ValueError("Failed to create playlist")
    return int(row[0])


def get_playlist(conn: psycopg.Connection, playlist_id: int, *, owner_id: Optional[int] = None) -> Optional[Playlist]:
    """
    Fetch one playlist by id.

    With `owner_id`, the lookup is scoped to that owner in the same query, so a
    foreign record comes back as None.
    """
    sql = "SELECT id, user_id, name, songs FROM playlists WHERE id = %s"
    params: tuple = (playlist_id,)
    if owner_id is not None:
        sql += " AND user_id = %s"
        params = (playlist_id, owner_id)

    with conn.cursor() as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
    if not row:
        return None
    return Playlist(id=int(row[0]), owner_id=int(row[1]), name=row[2], songs=_load_songs(row[3]))


def delete_playlist(conn: psycopg.Connection, playlist_id: int) -> bool:
    with conn.cursor() as cur:
        cur.execute("DELETE FROM playlists WHERE id = %s", (playlist_id,))
        deleted = cur.rowcount > 0
        conn.commit()
    return deleted
