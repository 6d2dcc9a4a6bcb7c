from pydantic import BaseModel, Field, computed_field, ConfigDict
from typing import Optional
from datetime import datetime
from shortlink_app.config import settings

OWNER_ID_MAX_LENGTH = 39


class LinkCreate(BaseModel):
    # Plain str: normalization (adding https://) happens in the service
    long_url: str = Field(..., description="The URL to be shortened; https:// is added if missing")
    # GitHub logins are at most 39 characters; keeps ("ownerIndex", owner, code) within the key column
    owner_id: str = Field(..., min_length=1, max_length=OWNER_ID_MAX_LENGTH, description="Login of the link owner")


class LinkResponse(BaseModel):
    """Response schema that serializes a LinkRecord

    - from_attributes=True reads straight from the record
    - @computed_field adds the full short URL
    """
    short_code: str
    long_url: str
    owner_id: str
    created_at: datetime
    click_count: int
    last_click_event_id: Optional[str] = None

    @computed_field
    @property
    def short_url(self) -> str:
        """Computed field - automatically generated from short_code"""
        return f"{settings.base_url}/{self.short_code}"

    model_config = ConfigDict(from_attributes=True)


class ClickEventResponse(BaseModel):
    short_code: str
    sequence: int
    created_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    referer: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ClickRecorded(BaseModel):
    short_code: str
    sequence: int
    attempts: int
