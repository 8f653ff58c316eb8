"""
salon_booking/services/google_calendar.py

Google Calendar busy-time supplier for providers.

Handles:
- Saving provider credentials (explicit create-or-update)
- Access token refresh (5 minutes before expiry)
- Free/busy queries, split into 90 day chunks
- Replacing stored external busy blocks for a window

OAuth consent itself happens outside this service; it only receives tokens.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import CalendarSyncFailed, InvalidRange, ProviderNotFound
from ..models import CalendarCredentials, ExternalBusyIntervals, Providers
from .slots.config import BookingConfig, get_booking_config
from .slots.intervals import Interval, merge_intervals
from .slots.timeutil import UTC, ensure_utc, to_db

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR = "google_calendar"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Free/busy needs read access only
SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_google_time(value: str) -> datetime:
    """RFC 3339 from the API ("2025-03-03T09:00:00Z") → aware UTC."""
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def split_range(start: datetime, end: datetime, chunk_days: int = 90) -> list[Interval]:
    """
    Split [start, end) into consecutive chunks of at most chunk_days.

    Google only answers free/busy for limited windows.
    """
    chunks = []
    step = timedelta(days=chunk_days)
    current = start
    while current < end:
        chunk_end = min(current + step, end)
        chunks.append(Interval(current, chunk_end))
        current = chunk_end
    return chunks


# ── Credentials ──────────────────────────────────────────────────────────


def store_credentials(
    db: Session,
    provider_id: int,
    access_token: str,
    refresh_token: str,
    token_expires_at: Optional[datetime] = None,
    calendar_ids: Optional[list[str]] = None,
) -> CalendarCredentials:
    """
    Save Google tokens for a provider.

    Explicit create-or-update: (provider_id, provider) is unique, so a
    concurrent create loses with IntegrityError and falls back to update.
    """
    if not db.get(Providers, provider_id):
        raise ProviderNotFound(field="provider_id")

    values = {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_expires_at": to_db(token_expires_at) if token_expires_at else None,
        "calendar_ids": json.dumps(calendar_ids or []),
        "sync_enabled": 1,
        "invalid": 0,
        "updated_at": _utcnow().strftime("%Y-%m-%d %H:%M:%S"),
    }

    credential = _get_credential(db, provider_id)
    if credential:
        # Update existing credential
        for key, value in values.items():
            setattr(credential, key, value)
        db.commit()
        logger.info(f"Google Calendar credentials updated for provider {provider_id}")
        return credential

    credential = CalendarCredentials(provider_id=provider_id, provider=GOOGLE_CALENDAR, **values)
    db.add(credential)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        credential = _get_credential(db, provider_id)
        for key, value in values.items():
            setattr(credential, key, value)
        db.commit()

    logger.info(f"Google Calendar connected for provider {provider_id}")
    return credential


def _get_credential(db: Session, provider_id: int) -> Optional[CalendarCredentials]:
    return db.query(CalendarCredentials).filter(
        CalendarCredentials.provider_id == provider_id,
        CalendarCredentials.provider == GOOGLE_CALENDAR,
    ).first()


def _build_credentials(credential: CalendarCredentials) -> Credentials:
    return Credentials(
        token=credential.access_token,
        refresh_token=credential.refresh_token,
        token_uri=TOKEN_URI,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        scopes=SCOPES,
        # google-auth compares expiry as naive UTC
        expiry=credential.token_expires_at,
    )


def refresh_access_token(credentials: Credentials) -> Credentials:
    """
    Refresh an access token in place.

    Raises:
        ValueError: If refresh fails (token revoked or invalid)
    """
    from google.auth.transport.requests import Request

    try:
        credentials.refresh(Request())
    except RefreshError as e:
        logger.error(f"Token refresh failed: {e}")
        raise ValueError(f"Token refresh failed: {e}")
    return credentials


# ── Free/busy ────────────────────────────────────────────────────────────


class GoogleFreeBusyClient:
    """Busy intervals of one provider credential."""

    def __init__(
        self,
        credential: CalendarCredentials,
        config: BookingConfig | None = None,
        service_factory: Callable = build,
    ):
        self.credential = credential
        self.config = config or get_booking_config()
        self.service_factory = service_factory
        self.credentials = _build_credentials(credential)

    @property
    def calendar_ids(self) -> list[str]:
        try:
            ids = json.loads(self.credential.calendar_ids or "[]")
        except json.JSONDecodeError:
            ids = []
        # No calendars selected: primary calendar
        return ids or ["primary"]

    def ensure_fresh_token(self, now: datetime | None = None) -> bool:
        """
        Refresh the access token when it expires within the margin.

        Returns:
            True if a refresh happened (credential row updated, not committed)
        """
        now = ensure_utc(now) if now else _utcnow()
        expires_at = self.credential.token_expires_at
        margin = timedelta(seconds=self.config.token_refresh_margin_seconds)

        if expires_at and ensure_utc(expires_at) - now > margin and self.credential.access_token:
            return False

        refresh_access_token(self.credentials)
        self.credential.access_token = self.credentials.token
        if self.credentials.expiry:
            self.credential.token_expires_at = self.credentials.expiry
        self.credential.updated_at = now.strftime("%Y-%m-%d %H:%M:%S")
        logger.info(f"Refreshed Google access token for provider {self.credential.provider_id}")
        return True

    def busy_intervals(self, start: datetime, end: datetime) -> list[Interval]:
        """
        Busy time across the selected calendars in [start, end).

        Raises:
            HttpError: If an API call fails
        """
        service = self.service_factory("calendar", "v3", credentials=self.credentials, cache_discovery=False)
        intervals: list[Interval] = []
        for chunk in split_range(ensure_utc(start), ensure_utc(end), self.config.google_freebusy_chunk_days):
            intervals.extend(self._query(service, chunk))
        return merge_intervals(intervals)

    def _query(self, service, chunk: Interval) -> list[Interval]:
        body = {
            "timeMin": chunk.start.astimezone(UTC).isoformat(),
            "timeMax": chunk.end.astimezone(UTC).isoformat(),
            "items": [{"id": calendar_id} for calendar_id in self.calendar_ids],
        }
        try:
            response = service.freebusy().query(body=body).execute()
        except HttpError as e:
            logger.error(f"Free/busy query failed for provider {self.credential.provider_id}: {e}")
            raise

        intervals = []
        for calendar_id, data in (response.get("calendars") or {}).items():
            if data.get("errors"):
                logger.warning(f"Calendar {calendar_id} returned errors: {data['errors']}")
            for busy in data.get("busy", []):
                intervals.append(Interval(_parse_google_time(busy["start"]), _parse_google_time(busy["end"])))
        return intervals


# ── Sync ─────────────────────────────────────────────────────────────────


@dataclass
class SyncResult:
    provider_id: int
    synced_credentials: int = 0
    stored_intervals: int = 0
    failed_credentials: list[int] = field(default_factory=list)


def sync_external_busy(
    db: Session,
    provider_id: int,
    start: datetime,
    end: datetime,
    now: datetime | None = None,
    client_factory: Callable[[CalendarCredentials], GoogleFreeBusyClient] | None = None,
) -> SyncResult:
    """
    Replace stored busy blocks of every enabled credential within [start, end).

    A credential whose token cannot be refreshed is marked invalid; the
    others still sync. Each credential commits on its own.

    Raises:
        ProviderNotFound: unknown provider
        InvalidRange: end <= start
        CalendarSyncFailed: every credential failed
    """
    start = ensure_utc(start)
    end = ensure_utc(end)
    now = ensure_utc(now) if now else _utcnow()
    client_factory = client_factory or GoogleFreeBusyClient

    if not db.get(Providers, provider_id):
        raise ProviderNotFound(field="provider_id")
    if end <= start:
        raise InvalidRange("'end' must be after 'start'", field="end")

    credentials = db.query(CalendarCredentials).filter(
        CalendarCredentials.provider_id == provider_id,
        CalendarCredentials.provider == GOOGLE_CALENDAR,
        CalendarCredentials.sync_enabled == 1,
        CalendarCredentials.invalid == 0,
    ).all()

    result = SyncResult(provider_id=provider_id)
    if not credentials:
        logger.info(f"Provider {provider_id}: no active calendar credentials")
        return result

    for credential in credentials:
        client = client_factory(credential)
        try:
            client.ensure_fresh_token(now)
            intervals = client.busy_intervals(start, end)
        except ValueError as e:
            db.rollback()
            logger.error(f"Provider {provider_id}: credential {credential.id} marked invalid: {e}")
            credential.invalid = 1
            credential.updated_at = now.strftime("%Y-%m-%d %H:%M:%S")
            db.commit()
            result.failed_credentials.append(credential.id)
            continue
        except HttpError as e:
            db.rollback()
            logger.error(f"Provider {provider_id}: sync of credential {credential.id} failed: {e}")
            result.failed_credentials.append(credential.id)
            continue

        db.query(ExternalBusyIntervals).filter(
            ExternalBusyIntervals.credential_id == credential.id,
            ExternalBusyIntervals.start < to_db(end),
            ExternalBusyIntervals.end > to_db(start),
        ).delete(synchronize_session=False)

        for interval in intervals:
            db.add(ExternalBusyIntervals(
                provider_id=provider_id,
                credential_id=credential.id,
                start=to_db(interval.start),
                end=to_db(interval.end),
                source=GOOGLE_CALENDAR,
            ))

        credential.last_sync_at = to_db(now)
        db.commit()

        result.synced_credentials += 1
        result.stored_intervals += len(intervals)
        logger.info(
            f"Provider {provider_id}: credential {credential.id} synced, {len(intervals)} busy blocks"
        )

    if result.failed_credentials and not result.synced_credentials:
        raise CalendarSyncFailed(
            f"All {len(result.failed_credentials)} calendar credentials failed to sync",
            field="provider_id",
        )

    return result
