"""
Account data models.

Credentials returned by stores and managers are snapshots: mutating one has
no effect on stored state until it is passed back to an upsert.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

OFFLINE_TOKEN = "offline"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime) -> int:
    """Unix seconds for a stored expiry."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_timestamp(value: Optional[int]) -> datetime:
    """Stored expiry to an aware datetime; unreadable values count as already expired."""
    if value is None:
        return utcnow()
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return utcnow()


class Credentials(BaseModel, ABC):
    """Fields shared by every credential namespace."""
    expires: datetime
    active: bool = False

    @property
    @abstractmethod
    def id(self) -> str:
        """Store key of the account."""

    @property
    @abstractmethod
    def token(self) -> str:
        """Bearer token presented to the remote service."""

    @abstractmethod
    def with_token(self, token: str, expires: datetime) -> "Credentials":
        """Copy with the token and expiry replaced."""


class OfflineProfile(BaseModel):
    """Offline identity; skins and capes are placeholders never populated here."""
    id: UUID
    name: str
    skins: List[dict] = Field(default_factory=list)
    capes: List[dict] = Field(default_factory=list)


class OfflineCredentials(Credentials):
    profile: OfflineProfile
    access_token: str = OFFLINE_TOKEN
    refresh_token: str = OFFLINE_TOKEN

    @property
    def id(self) -> str:
        return str(self.profile.id)

    @property
    def token(self) -> str:
        return self.access_token

    def with_token(self, token: str, expires: datetime) -> "OfflineCredentials":
        return self.model_copy(update={'access_token': token, 'expires': expires})


class RemoteCredentials(Credentials):
    """Session issued by the remote service for one of its users."""
    session: str
    user_id: str

    @property
    def id(self) -> str:
        return self.user_id

    @property
    def token(self) -> str:
        return self.session

    def with_token(self, token: str, expires: datetime) -> "RemoteCredentials":
        return self.model_copy(update={'session': token, 'expires': expires})


class RemoteProfile(BaseModel):
    """Response of GET <api>/user; only `id` is required."""
    model_config = ConfigDict(extra="ignore")

    id: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None


class SessionResponse(BaseModel):
    """Response of POST <api>/session/refresh."""
    model_config = ConfigDict(extra="ignore")

    session: str
