from enum import Enum

from citaflow.errors import CitaflowError
from citaflow.logging_config import get_logger
from citaflow.models import Tenant
from citaflow.schemas.webhook import InboundMessage
from citaflow.services.analytics_service import AnalyticsService, EventType
from citaflow.services.conversion_service import ConversionService
from citaflow.services.scheduler import Clock, Scheduler
from citaflow.services.ttl_cache import TTLCache
from citaflow.services.wassenger_service import WassengerService

logger = get_logger("lead_deduplicator")


class LeadDecision(str, Enum):
    CLAIMED = "claimed"
    ALREADY_SENT = "already_sent"
    IN_FLIGHT = "in_flight"
    NOT_ELIGIBLE = "not_eligible"


class LeadDeduplicator:
    """Reports the Lead conversion at most once per conversation.

    ``try_claim`` never awaits: the eligibility check and the guard write happen in the
    same loop step, so concurrent webhooks for one conversation cannot both claim. The
    conversion call runs as a background task and releases the guard when it fails.
    Across processes only the contact metadata flag deduplicates.
    """

    def __init__(
        self,
        cache: TTLCache,
        clock: Clock,
        scheduler: Scheduler,
        conversions: ConversionService,
        messaging: WassengerService,
        analytics: AnalyticsService,
        metadata_key: str = "capi_lead_enviado",
    ):
        self.cache = cache
        self.clock = clock
        self.scheduler = scheduler
        self.conversions = conversions
        self.messaging = messaging
        self.analytics = analytics
        self.metadata_key = metadata_key

    @staticmethod
    def key(tenant: Tenant, phone: str) -> str:
        return f"{tenant.slug}:{phone}"

    def is_eligible(self, message: InboundMessage) -> bool:
        return message.data.flow == "inbound" and message.is_first_message is False

    def try_claim(self, tenant: Tenant, message: InboundMessage) -> LeadDecision:
        if not self.is_eligible(message):
            return LeadDecision.NOT_ELIGIBLE

        key = self.key(tenant, message.phone)
        if message.data.metadata_value(self.metadata_key) == "true":
            logger.info("Lead already reported for contact", extra={"context": {"key": key}})
            return LeadDecision.ALREADY_SENT

        now = self.clock.now()
        if self.cache.is_live(key, now):
            logger.info("Lead send already in flight", extra={"context": {"key": key}})
            return LeadDecision.IN_FLIGHT

        self.cache.put(key, now)
        self.scheduler.spawn(self._send_lead(tenant, message.phone, key))
        return LeadDecision.CLAIMED

    async def _send_lead(self, tenant: Tenant, phone: str, key: str) -> None:
        try:
            await self.conversions.send_event(tenant, "Lead", {"phone": phone})
        except (CitaflowError, ValueError) as exc:
            self.cache.remove(key)
            logger.warning(
                "Lead conversion failed, guard released",
                extra={"context": {"key": key, "error": str(exc)}},
            )
            return
        except Exception as exc:
            self.cache.remove(key)
            logger.error(
                "Unexpected error sending lead conversion, guard released",
                extra={"context": {"key": key, "error": str(exc)}},
                exc_info=True,
            )
            return

        self.analytics.record_event(tenant.slug, EventType.LEAD, phone)
        try:
            await self.messaging.update_contact_metadata(tenant, phone, {self.metadata_key: "true"})
        except CitaflowError as exc:
            # The conversion went out, so the guard stays until its TTL expires.
            logger.error(
                "Failed to mark lead as sent in contact metadata",
                extra={"context": {"key": key, "error": exc.message}},
            )
