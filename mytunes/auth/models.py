from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    GUEST = "guest"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated actor, fixed for the lifetime of a session."""

    id: int
    role: Role
    username: Optional[str] = None


@dataclass
class LocalUser:
    """User account stored in PostgreSQL."""

    id: int
    username: str
    password_hash: str
    role: Role
    created_at: Optional[datetime] = None

    def to_principal(self) -> Principal:
        return Principal(id=self.id, role=self.role, username=self.username)
