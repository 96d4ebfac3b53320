"""
Pytest config.

Local imports like `import mytunes` rely on the repo root being on sys.path. When
invoking a global `pytest` entrypoint that doesn't always happen during
collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, List, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    """
    Unit tests never talk to a real Postgres.

    Drop DB/bootstrap env vars so app startup hooks are no-ops, give sessions a
    signing key, and reset process-wide caches between tests.
    """
    for name in (
        "POSTGRES_DSN",
        "POSTGRES_HOST",
        "POSTGRES_DB",
        "POSTGRES_USER",
        "POSTGRES_PASSWORD",
        "DB_AUTO_MIGRATE",
        "ADMIN_INITIAL_PASSWORD",
        "AUTH_COOKIE_SECURE",
        "AUTH_PUBLIC_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AUTH_SESSION_SECRET", "test-secret-key-for-testing-purposes-only")

    from mytunes.config import load_auth_config
    from mytunes.auth.rate_limit import reset_login_throttle

    load_auth_config.cache_clear()
    reset_login_throttle()
    yield
    load_auth_config.cache_clear()
    reset_login_throttle()


class FakeCursor:
    def __init__(self, conn: "FakeConn") -> None:
        self._conn = conn
        self.rowcount = conn.rowcount

    def execute(self, sql: str, params: Any = None) -> None:
        self._conn.executed.append((sql, params))

    def fetchone(self) -> Optional[tuple]:
        return self._conn.rows.pop(0) if self._conn.rows else None

    def fetchall(self) -> List[tuple]:
        rows = list(self._conn.rows)
        self._conn.rows.clear()
        return rows

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False


class FakeConn:
    """Records SQL sent through `conn.cursor()` and replays scripted rows."""

    def __init__(self, rows: Optional[List[tuple]] = None, rowcount: int = 0) -> None:
        self.rows = list(rows or [])
        self.rowcount = rowcount
        self.executed: List[tuple] = []
        self.commits = 0
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def close(self) -> None:
        self.closed = True

    @property
    def last_sql(self) -> str:
        return self.executed[-1][0] if self.executed else ""

    @property
    def last_params(self) -> Any:
        return self.executed[-1][1] if self.executed else None


@pytest.fixture
def fake_conn():
    return FakeConn
