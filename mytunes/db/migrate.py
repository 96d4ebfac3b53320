from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from mytunes.config import DbConfig, load_db_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# Stable advisory lock key so concurrent starters serialize on migrations.
MIGRATION_LOCK_KEY = 604218833107


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    checksum: str
    sql: str


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    if not directory.exists():
        return []
    migrations: List[Migration] = []
    for p in sorted(p for p in directory.iterdir() if p.is_file() and p.name.endswith(".sql")):
        raw = p.read_bytes()
        migrations.append(
            Migration(
                version=p.name.split(".")[0],
                path=p,
                checksum=hashlib.sha256(raw).hexdigest(),
                sql=raw.decode("utf-8"),
            )
        )
    return migrations


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


def ensure_schema_migrations_table(conn) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version text PRIMARY KEY,
          checksum text NOT NULL,
          applied_at timestamptz NOT NULL DEFAULT now()
        );
        """)


def _get_applied(conn) -> dict:
    rows = conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall()
    return {str(r[0]): str(r[1]) for r in rows}


def apply_migrations(
    *,
    dsn: str,
    migrations: Optional[Iterable[Migration]] = None,
) -> Tuple[int, List[str]]:
    """
    Apply pending migrations in version order, one transaction each.

    Returns: (applied_count, applied_versions)

    Raises:
        RuntimeError: if an already-applied migration file was modified.
    """
    migs = list(migrations) if migrations is not None else load_migrations()
    applied_versions: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
        try:
            ensure_schema_migrations_table(conn)
            applied = _get_applied(conn)

            for m in migs:
                prev = applied.get(m.version)
                if prev is not None:
                    if prev != m.checksum:
                        raise RuntimeError(
                            f"Migration checksum mismatch for {m.version}: db={prev[:12]} file={m.checksum[:12]}"
                        )
                    continue

                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations(version, checksum) VALUES (%s, %s);",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s", m.version)
                applied_versions.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))

    return len(applied_versions), applied_versions


def maybe_auto_migrate(cfg: Optional[DbConfig] = None) -> Tuple[bool, str]:
    """
    Auto-migrate on startup when DB_AUTO_MIGRATE=1 and Postgres is configured.

    Returns: (did_attempt, message)
    """
    cfg = cfg or load_db_config()
    if not cfg.auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = cfg.dsn
    if not dsn:
        return False, "Postgres DSN not configured"
    try:
        n, versions = apply_migrations(dsn=dsn)
    except Exception as e:
        logger.exception("Migration failed")
        return True, f"Migration failed: {e}"
    if n:
        return True, f"Applied {n} migration(s): {', '.join(versions)}"
    return True, "No pending migrations"
