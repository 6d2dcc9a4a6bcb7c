"""
Records persisted in the key-value store.

Stored as model_dump(mode="json") documents; read back with model_validate.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LinkRecord(BaseModel):
    """
    A short link and its click counter.

    click_count always equals the number of ClickEvent records stored for
    the short code; only the click recorder changes it.
    """

    short_code: str = Field(..., description="Primary key, 7 alphanumeric characters")
    long_url: str = Field(..., description="Normalized absolute target URL")
    owner_id: str = Field(..., description="Login of the user who created the link")
    created_at: datetime = Field(default_factory=utcnow)
    click_count: int = Field(0, ge=0)
    last_click_event_id: Optional[str] = Field(None, description="'{short_code}:{sequence}' of the latest click")

    @classmethod
    def new(cls, long_url: str, short_code: str, owner_id: str) -> "LinkRecord":
        return cls(short_code=short_code, long_url=long_url, owner_id=owner_id)


class ClickMetadata(BaseModel):
    """Optional request details captured with a click"""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    referer: Optional[str] = None


class ClickEvent(ClickMetadata):
    """
    One recorded click.

    Keyed by (short_code, sequence); sequence is the link's click_count
    right after this click, so sequences are 1..N without gaps.
    """

    short_code: str = Field(..., description="The short code that was accessed")
    sequence: int = Field(..., ge=1, description="1-based click ordinal")
    created_at: datetime = Field(default_factory=utcnow, description="When the click occurred")

    @property
    def event_id(self) -> str:
        return f"{self.short_code}:{self.sequence}"

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "short_code": "aZ3kQ9x",
                "sequence": 42,
                "created_at": "2025-10-29T10:30:00Z",
                "ip_address": "192.168.1.1",
                "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
                "country": "US",
                "referer": "https://twitter.com",
            }
        }
    )


class SessionUser(BaseModel):
    """GitHub profile kept for a login session"""

    login: str
    avatar_url: str
    profile_url: str
