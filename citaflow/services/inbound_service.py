from enum import Enum
from typing import Any, Optional

from citaflow.errors import CitaflowError
from citaflow.logging_config import get_logger
from citaflow.models import Tenant
from citaflow.schemas.webhook import InboundMessage, OutboundMessage, parse_webhook_event
from citaflow.services.agent_webhook_service import AgentWebhookService
from citaflow.services.analytics_service import AnalyticsService, EventType
from citaflow.services.debounce_buffer import DebounceBuffer
from citaflow.services.handoff_guard import HandoffGuard, SuppressionReason
from citaflow.services.lead_deduplicator import LeadDeduplicator
from citaflow.services.scheduler import Scheduler
from citaflow.services.tenant_service import TenantResolver

logger = get_logger("inbound_service")


class WebhookOutcome(str, Enum):
    ACKNOWLEDGED = "OK"
    BUFFERED = "Buffered"
    SUPPRESSED_BY_HANDOFF = "Suppressed by Human Handoff"
    SUPPRESSED_BY_LABEL = 'Suppressed by "humano" label'


class InboundEventRouter:
    """Entry point for messaging provider webhooks.

    Outbound messages only feed the handoff guard. Inbound messages go through handoff
    suppression, analytics, lead deduplication and finally the debounce buffer, whose
    flush forwards the coalesced turn to the tenant's agent webhook.
    """

    def __init__(
        self,
        tenants: TenantResolver,
        handoff: HandoffGuard,
        lead: LeadDeduplicator,
        analytics: AnalyticsService,
        agent_webhook: AgentWebhookService,
        scheduler: Scheduler,
        debounce_delay_seconds: float = 15.0,
    ):
        self.tenants = tenants
        self.handoff = handoff
        self.lead = lead
        self.analytics = analytics
        self.agent_webhook = agent_webhook
        self.scheduler = scheduler
        self.buffer = DebounceBuffer(self._deliver_batch, scheduler, delay_seconds=debounce_delay_seconds)

    @staticmethod
    def conversation_key(device_id: Optional[str], phone: str) -> str:
        return f"{device_id or '-'}:{phone}"

    async def _resolve_tenant(self, device_id: Optional[str]) -> Optional[Tenant]:
        if not device_id:
            return None
        try:
            return await self.tenants.get_tenant_by_device_id(device_id)
        except CitaflowError as exc:
            logger.error(
                "Tenant lookup failed",
                extra={"context": {"device_id": device_id, "error": exc.message}},
            )
            return None

    async def handle(self, payload: Any) -> WebhookOutcome:
        event = parse_webhook_event(payload)
        if isinstance(event, OutboundMessage):
            await self._handle_outbound(event)
            return WebhookOutcome.ACKNOWLEDGED
        if isinstance(event, InboundMessage):
            return await self._handle_inbound(event)
        return WebhookOutcome.ACKNOWLEDGED

    async def _handle_outbound(self, event: OutboundMessage) -> None:
        if not event.sent_by_human or not event.data.to:
            return
        self.handoff.record_human_activity(event.device_id, event.data.to)
        self.scheduler.spawn(self._record_handoff(event.device_id, event.data.to))

    async def _record_handoff(self, device_id: Optional[str], jid: str) -> None:
        tenant = await self._resolve_tenant(device_id)
        if tenant is not None:
            self.analytics.record_event(tenant.slug, EventType.HANDOFF, jid)

    async def _handle_inbound(self, message: InboundMessage) -> WebhookOutcome:
        decision = self.handoff.check(message)
        if decision.suppressed:
            logger.info(
                "Inbound message suppressed",
                extra={
                    "context": {
                        "device_id": message.device_id,
                        "jid": message.jid,
                        "reason": decision.reason.value,
                        "remaining_seconds": round(decision.remaining_seconds),
                    }
                },
            )
            if decision.reason == SuppressionReason.LABEL:
                return WebhookOutcome.SUPPRESSED_BY_LABEL
            return WebhookOutcome.SUPPRESSED_BY_HANDOFF

        tenant = await self._resolve_tenant(message.device_id)
        if tenant is not None:
            self.analytics.record_event(tenant.slug, EventType.MESSAGE, message.phone)
            if message.is_first_message is True:
                self.analytics.record_event(tenant.slug, EventType.NEW_CONVERSATION, message.phone)
            self.lead.try_claim(tenant, message)

        key = self.conversation_key(message.device_id, message.phone)
        count = self.buffer.on_message(key, message.data.body, message.raw)
        logger.info("Message buffered", extra={"context": {"key": key, "buffered": count}})
        return WebhookOutcome.BUFFERED

    async def _deliver_batch(self, key: str, combined: str, context: dict[str, Any]) -> None:
        device_id = (context.get("device") or {}).get("id")
        tenant = await self._resolve_tenant(device_id)
        if tenant is None:
            logger.error("Dropping buffered messages, tenant not found", extra={"context": {"key": key}})
            return
        if not tenant.webhook_url:
            logger.error(
                "Dropping buffered messages, tenant has no webhook URL",
                extra={"context": {"key": key, "tenant": tenant.slug}},
            )
            return

        data = context.get("data") or {}
        payload = {**context, "data": {**data, "body": combined}}
        status = await self.agent_webhook.forward(tenant.webhook_url, payload)
        logger.info(
            "Forwarded buffered messages to agent webhook",
            extra={"context": {"key": key, "tenant": tenant.slug, "status": status}},
        )

    def shutdown(self) -> int:
        return self.buffer.cancel_all()
