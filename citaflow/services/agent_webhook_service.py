from typing import Optional

import httpx

from citaflow.config import settings
from citaflow.errors import UpstreamProviderError
from citaflow.logging_config import get_logger

logger = get_logger("agent_webhook_service")


class AgentWebhookService:
    """Forwards coalesced conversation turns to the tenant's agent webhook."""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._transport = transport

    async def forward(self, webhook_url: str, payload: dict) -> int:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamProviderError(
                "agent_webhook", exc.response.text[:200], status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamProviderError("agent_webhook", str(exc)) from exc
        return response.status_code
