"""Playlist domain models shared by the store, the policy and the API.

Track descriptors are opaque: whatever the UI sends in `songs` is stored and
returned as-is.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BaseModelStrict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Playlist(BaseModelStrict):
    id: int
    owner_id: int
    name: str
    songs: List[Any] = Field(default_factory=list)

    def to_api(self) -> dict:
        # Wire shape keeps the original column name for the owner.
        return {"id": self.id, "userId": self.owner_id, "name": self.name, "songs": self.songs}


class PlaylistSummary(BaseModelStrict):
    id: int
    name: str
    # Only populated for admin listings (joined with users).
    username: Optional[str] = None


class PlaylistCreateRequest(BaseModel):
    name: str
    songs: List[Any] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("songs", mode="before")
    @classmethod
    def _songs_default(cls, v: Any) -> Any:
        # The UI may post `songs: null` for an empty playlist.
        return [] if v is None else v
