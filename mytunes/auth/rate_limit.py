from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple


class LoginThrottle:
    """
    In-memory limiter for failed logins, keyed by username.

    Per-process only: each worker keeps its own counters.
    """

    def __init__(self, max_attempts: int = 5, window_seconds: int = 300):
        self._attempts: Dict[str, List[datetime]] = defaultdict(list)
        self._max_attempts = max_attempts
        self._window = timedelta(seconds=window_seconds)

    def check_and_increment(self, username: str, *, now: Optional[datetime] = None) -> Tuple[bool, int]:
        """
        Record an attempt for `username`.

        Returns (is_allowed, attempts_remaining). Once `max_attempts` attempts
        fall inside the window, further attempts are refused until the oldest
        one ages out.
        """
        now = now or datetime.now()
        recent = [t for t in self._attempts[username] if now - t < self._window]
        if len(recent) >= self._max_attempts:
            self._attempts[username] = recent
            return False, 0

        recent.append(now)
        self._attempts[username] = recent
        return True, self._max_attempts - len(recent)

    def reset(self, username: str) -> None:
        self._attempts.pop(username, None)


_login_throttle: LoginThrottle | None = None


def get_login_throttle() -> LoginThrottle:
    global _login_throttle
    if _login_throttle is None:
        from mytunes.config import load_auth_config

        cfg = load_auth_config()
        _login_throttle = LoginThrottle(max_attempts=cfg.login_max_attempts, window_seconds=cfg.login_window_seconds)
    return _login_throttle


def reset_login_throttle() -> None:
    global _login_throttle
    _login_throttle = None
