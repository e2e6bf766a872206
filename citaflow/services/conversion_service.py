"""Meta Conversions API client.

User identifiers are SHA-256 hashed after normalization, as the API requires; browser
identifiers (fbp/fbc, user agent, IP) are passed through untouched.
"""

import hashlib
import re
from typing import Any, Optional

import httpx

from citaflow.config import settings
from citaflow.errors import ConfigurationError, UpstreamProviderError
from citaflow.logging_config import get_logger
from citaflow.models import Tenant
from citaflow.services.scheduler import Clock, SystemClock

logger = get_logger("conversion_service")

EVENT_NAMES = ("Lead", "Purchase", "Schedule")
PASSTHROUGH_FIELDS = ("fbp", "fbc", "client_user_agent", "client_ip_address")


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_user_data(user_data: dict[str, Any]) -> dict[str, str]:
    hashed: dict[str, str] = {}
    email = user_data.get("email")
    if email:
        hashed["em"] = hash_value(str(email).strip().lower())
    phone = user_data.get("phone")
    if phone:
        digits = re.sub(r"[^0-9]", "", str(phone))
        if digits:
            hashed["ph"] = hash_value(digits)
    for field in PASSTHROUGH_FIELDS:
        if user_data.get(field):
            hashed[field] = str(user_data[field])
    return hashed


class ConversionService:
    def __init__(
        self,
        clock: Optional[Clock] = None,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._clock = clock or SystemClock()
        self.base_url = (base_url or settings.meta_graph_url).rstrip("/")
        self.api_version = api_version or settings.meta_api_version
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._transport = transport

    def build_payload(
        self,
        tenant: Tenant,
        event_name: str,
        user_data: dict[str, Any],
        event_source_url: Optional[str] = None,
        event_id: Optional[str] = None,
        action_source: str = "website",
    ) -> dict:
        event: dict[str, Any] = {
            "event_name": event_name,
            "event_time": int(self._clock.now()),
            "user_data": hash_user_data(user_data),
            "action_source": action_source,
        }
        if event_source_url:
            event["event_source_url"] = event_source_url
        if event_id:
            event["event_id"] = event_id
        return {"data": [event], "access_token": tenant.meta_access_token}

    async def send_event(
        self,
        tenant: Tenant,
        event_name: str,
        user_data: dict[str, Any],
        event_source_url: Optional[str] = None,
        event_id: Optional[str] = None,
        action_source: str = "website",
    ) -> dict:
        """Send one conversion event. Raises UpstreamProviderError when Meta rejects it."""
        if event_name not in EVENT_NAMES:
            raise ValueError(f"Unsupported conversion event: {event_name}")
        if not tenant.meta_pixel_id or not tenant.meta_access_token:
            raise ConfigurationError(f"Tenant {tenant.slug} has no Meta pixel configured")

        payload = self.build_payload(tenant, event_name, user_data, event_source_url, event_id, action_source)
        url = f"{self.base_url}/{self.api_version}/{tenant.meta_pixel_id}/events"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamProviderError("meta_capi", str(exc)) from exc

        if response.status_code >= 400:
            raise UpstreamProviderError("meta_capi", response.text[:200], status_code=response.status_code)

        logger.info(
            f"Conversion event {event_name} sent",
            extra={"context": {"tenant": tenant.slug, "event_name": event_name}},
        )
        try:
            return response.json()
        except ValueError:
            return {}
