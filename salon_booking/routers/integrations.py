# salon_booking/routers/integrations.py
# API endpoints for provider calendar integrations (Google Calendar busy sync)

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.integrations import (
    CalendarCredentialRead,
    GoogleCredentialsCreate,
    SyncRequest,
    SyncResultRead,
)
from ..services.google_calendar import store_credentials, sync_external_busy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.put(
    "/google/{provider_id}/credentials",
    response_model=CalendarCredentialRead,
    status_code=status.HTTP_200_OK,
)
def put_google_credentials(
    provider_id: int,
    data: GoogleCredentialsCreate,
    db: Session = Depends(get_db),
):
    """
    Save tokens obtained by the OAuth flow.

    Creates the credential or updates the existing one; a credential
    previously marked invalid becomes active again.
    """
    return store_credentials(
        db,
        provider_id,
        access_token=data.access_token,
        refresh_token=data.refresh_token,
        token_expires_at=data.token_expires_at,
        calendar_ids=data.calendar_ids,
    )


@router.post("/google/{provider_id}/sync", response_model=SyncResultRead)
def sync_google_busy(
    provider_id: int,
    data: SyncRequest,
    db: Session = Depends(get_db),
):
    """Pull free/busy from Google and replace stored busy blocks for the window."""
    result = sync_external_busy(db, provider_id, data.start, data.end)
    logger.info(
        f"Google sync for provider {provider_id}: "
        f"{result.synced_credentials} ok, {len(result.failed_credentials)} failed"
    )
    return result
