import asyncio
from datetime import datetime, timezone
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from citaflow.config import settings
from citaflow.errors import ConfigurationError, UpstreamProviderError
from citaflow.logging_config import get_logger
from citaflow.models import Tenant

logger = get_logger("calendar_service")

CALENDAR_SCOPES = ("https://www.googleapis.com/auth/calendar",)


def to_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class CalendarProvider(Protocol):
    async def list_events(
        self, tenant: Tenant, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[dict[str, Any]]: ...

    async def insert_event(self, tenant: Tenant, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]: ...


class GoogleCalendarService:
    """Google Calendar v3 over REST, authenticated with the tenant's service account."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.google_calendar_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._transport = transport
        self._credentials: dict[str, service_account.Credentials] = {}

    def _load_credentials(self, path: str) -> service_account.Credentials:
        credentials = self._credentials.get(path)
        if credentials is None:
            credentials = service_account.Credentials.from_service_account_file(path, scopes=CALENDAR_SCOPES)
            self._credentials[path] = credentials
        if not credentials.valid:
            credentials.refresh(GoogleAuthRequest())
        return credentials

    async def _access_token(self, tenant: Tenant) -> str:
        if not tenant.google_service_account_file:
            raise ConfigurationError(f"Tenant {tenant.slug} has no Google service account configured")
        try:
            credentials = await asyncio.to_thread(self._load_credentials, tenant.google_service_account_file)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Invalid service account for tenant {tenant.slug}: {exc}") from exc
        except Exception as exc:
            raise UpstreamProviderError("google_calendar", f"token refresh failed: {exc}") from exc
        return credentials.token

    async def _request(
        self,
        tenant: Tenant,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        token = await self._access_token(tenant)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    params=params,
                    json=json_body,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            raise UpstreamProviderError("google_calendar", str(exc)) from exc

        if response.status_code >= 400:
            raise UpstreamProviderError("google_calendar", response.text[:200], status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamProviderError("google_calendar", "invalid JSON response") from exc
        if not isinstance(payload, dict):
            raise UpstreamProviderError("google_calendar", "unexpected response shape")
        return payload

    async def list_events(
        self, tenant: Tenant, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[dict[str, Any]]:
        params = {
            "timeMin": to_rfc3339(time_min),
            "timeMax": to_rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": 250,
        }
        items: list[dict[str, Any]] = []
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        while True:
            payload = await self._request(tenant, "GET", path, params=params)
            items.extend(item for item in payload.get("items") or [] if isinstance(item, dict))
            page_token = payload.get("nextPageToken")
            if not page_token:
                return items
            params = {**params, "pageToken": page_token}

    async def insert_event(self, tenant: Tenant, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        event = await self._request(
            tenant, "POST", f"/calendars/{quote(calendar_id, safe='')}/events", json_body=body
        )
        logger.info(
            "Calendar event created",
            extra={"context": {"tenant": tenant.slug, "calendar_id": calendar_id, "event_id": event.get("id")}},
        )
        return event
