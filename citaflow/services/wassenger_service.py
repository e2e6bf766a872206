from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

import httpx

from citaflow.config import settings
from citaflow.errors import ConfigurationError, UpstreamProviderError
from citaflow.logging_config import get_logger
from citaflow.models import Tenant

logger = get_logger("wassenger_service")


def to_chat_wid(phone_number: str) -> str:
    """Normalize a phone number or JID to the ``<number>@c.us`` chat id."""
    phone_number = phone_number.strip()
    if "@" in phone_number:
        return phone_number
    return f"{phone_number.lstrip('+')}@c.us"


class WassengerService:
    """Client for the Wassenger WhatsApp API (messages, chat labels, contact metadata)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.wassenger_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._transport = transport

    async def _make_request(
        self,
        tenant: Tenant,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        if not tenant.wassenger_api_key:
            raise ConfigurationError(f"Tenant {tenant.slug} has no Wassenger API key configured")

        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers={"Token": tenant.wassenger_api_key},
                )
        except httpx.HTTPError as exc:
            raise UpstreamProviderError("wassenger", str(exc)) from exc

        if response.status_code >= 400:
            raise UpstreamProviderError("wassenger", response.text[:200], status_code=response.status_code)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def send_message(
        self,
        tenant: Tenant,
        phone: str,
        message: str,
        deliver_at: Optional[datetime] = None,
    ) -> dict:
        """Send (or schedule, with ``deliver_at``) a text message to a contact."""
        data: dict[str, Any] = {"phone": phone, "message": message, "device": tenant.device_id}
        if deliver_at is not None:
            data["deliverAt"] = deliver_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return await self._make_request(tenant, "POST", "/messages", json=data)

    async def patch_chat_labels(self, tenant: Tenant, phone_number: str, labels: list[str]) -> Any:
        """Add labels to a chat, keeping the ones it already has."""
        wid = quote(to_chat_wid(phone_number), safe="@.")
        result = await self._make_request(
            tenant,
            "PATCH",
            f"/chat/{tenant.device_id}/chats/{wid}/labels",
            json=labels,
            params={"upsert": "true"},
        )
        logger.info(
            "Chat labels updated",
            extra={"context": {"tenant": tenant.slug, "chat": wid, "labels": labels}},
        )
        return result

    async def update_contact_metadata(self, tenant: Tenant, phone_number: str, metadata: dict[str, str]) -> Any:
        wid = quote(to_chat_wid(phone_number), safe="@.")
        formatted = [{"key": key, "value": value} for key, value in metadata.items()]
        return await self._make_request(
            tenant,
            "PATCH",
            f"/chat/{tenant.device_id}/contacts/{wid}",
            json={"metadata": formatted},
        )
