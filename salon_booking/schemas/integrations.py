# salon_booking/schemas/integrations.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class GoogleCredentialsCreate(BaseModel):
    access_token: str
    refresh_token: str
    token_expires_at: Optional[datetime] = None
    calendar_ids: list[str] = []


class CalendarCredentialRead(BaseModel):
    id: int
    provider_id: int
    provider: str
    sync_enabled: bool
    invalid: bool
    last_sync_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SyncRequest(BaseModel):
    start: datetime
    end: datetime


class SyncResultRead(BaseModel):
    provider_id: int
    synced_credentials: int
    stored_intervals: int
    failed_credentials: list[int]

    model_config = {"from_attributes": True}
