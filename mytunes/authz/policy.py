"""
Playlist access policy.

Every decision is a pure function of the principal (and, where relevant, the
looked-up playlist record). Nothing here touches the database or the session.

Rules:
- list:   admins see every playlist, everyone else only their own
- create: admins may not create playlists
- delete: missing record -> NotFound (checked first); owner or admin -> Allowed
- read:   owner only, no admin bypass; a foreign record is NotFound, not Denied
- users:  admins only
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from mytunes.auth.models import Principal, Role
from mytunes.core.models import Playlist

REASON_ADMIN_CREATE = "admins cannot create playlists"
REASON_NOT_OWNER = "not authorized to delete this playlist"
REASON_ADMINS_ONLY = "admins only"


@dataclass(frozen=True)
class Allowed:
    playlist: Optional[Playlist] = None


@dataclass(frozen=True)
class Denied:
    reason: str


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class AllScope:
    pass


@dataclass(frozen=True)
class OwnedScope:
    owner_id: int


ViewScope = Union[AllScope, OwnedScope]
Decision = Union[Allowed, Denied, NotFound]


def can_list_playlists(principal: Principal) -> ViewScope:
    if principal.role is Role.ADMIN:
        return AllScope()
    return OwnedScope(owner_id=principal.id)


def can_create_playlist(principal: Principal) -> Union[Allowed, Denied]:
    if principal.role is Role.ADMIN:
        return Denied(REASON_ADMIN_CREATE)
    return Allowed()


def can_delete_playlist(principal: Principal, playlist: Optional[Playlist]) -> Decision:
    """
    Decide whether `principal` may delete `playlist`.

    `playlist` is the result of an unscoped lookup by id (None when missing).
    Existence is reported before authorization: a missing id is NotFound for
    every principal.
    """
    if playlist is None:
        return NotFound()
    if principal.role is Role.ADMIN or playlist.owner_id == principal.id:
        return Allowed(playlist)
    return Denied(REASON_NOT_OWNER)


def can_read_playlist(principal: Principal, playlist: Optional[Playlist]) -> Union[Allowed, NotFound]:
    """
    Decide whether `principal` may read a single playlist.

    Ownership is part of the lookup itself, so admins get no bypass here
    (unlike list/delete) and another user's record is indistinguishable from
    a missing one.
    """
    if playlist is None or playlist.owner_id != principal.id:
        return NotFound()
    return Allowed(playlist)


def can_list_users(principal: Principal) -> Union[Allowed, Denied]:
    if principal.role is Role.ADMIN:
        return Allowed()
    return Denied(REASON_ADMINS_ONLY)
