"""Process-wide service wiring.

Each getter builds its component once; routers receive them through ``Depends`` and tests
swap them with ``app.dependency_overrides``.
"""

from functools import lru_cache

from citaflow.config import settings
from citaflow.services.agent_webhook_service import AgentWebhookService
from citaflow.services.analytics_service import AnalyticsService
from citaflow.services.availability_service import AvailabilityService
from citaflow.services.booking_service import BookingService
from citaflow.services.calendar_service import GoogleCalendarService
from citaflow.services.conversion_service import ConversionService
from citaflow.services.handoff_guard import HandoffGuard
from citaflow.services.inbound_service import InboundEventRouter
from citaflow.services.lead_deduplicator import LeadDeduplicator
from citaflow.services.reminder_service import ReminderService
from citaflow.services.scheduler import Scheduler, SystemClock
from citaflow.services.tenant_service import YamlTenantStore
from citaflow.services.tool_service import ToolService
from citaflow.services.ttl_cache import TTLCache
from citaflow.services.wassenger_service import WassengerService


@lru_cache
def get_clock() -> SystemClock:
    return SystemClock()


@lru_cache
def get_scheduler() -> Scheduler:
    return Scheduler()


@lru_cache
def get_tenant_store() -> YamlTenantStore:
    return YamlTenantStore(settings.tenants_file)


@lru_cache
def get_handoff_cache() -> TTLCache:
    return TTLCache("handoff", settings.handoff_timeout_seconds)


@lru_cache
def get_lead_cache() -> TTLCache:
    return TTLCache("lead_guard", settings.lead_guard_ttl_seconds)


@lru_cache
def get_analytics_service() -> AnalyticsService:
    return AnalyticsService(get_clock())


@lru_cache
def get_wassenger_service() -> WassengerService:
    return WassengerService()


@lru_cache
def get_conversion_service() -> ConversionService:
    return ConversionService(get_clock())


@lru_cache
def get_calendar_service() -> GoogleCalendarService:
    return GoogleCalendarService()


@lru_cache
def get_availability_service() -> AvailabilityService:
    return AvailabilityService(get_calendar_service(), get_clock())


@lru_cache
def get_booking_service() -> BookingService:
    return BookingService(
        calendar=get_calendar_service(),
        availability=get_availability_service(),
        reminders=ReminderService(get_wassenger_service(), get_clock()),
        conversions=get_conversion_service(),
        analytics=get_analytics_service(),
    )


@lru_cache
def get_tool_service() -> ToolService:
    return ToolService(
        tenants=get_tenant_store(),
        availability=get_availability_service(),
        booking=get_booking_service(),
        messaging=get_wassenger_service(),
        conversions=get_conversion_service(),
        humano_label=settings.humano_label,
    )


@lru_cache
def get_inbound_router() -> InboundEventRouter:
    clock = get_clock()
    return InboundEventRouter(
        tenants=get_tenant_store(),
        handoff=HandoffGuard(get_handoff_cache(), clock, label=settings.humano_label),
        lead=LeadDeduplicator(
            cache=get_lead_cache(),
            clock=clock,
            scheduler=get_scheduler(),
            conversions=get_conversion_service(),
            messaging=get_wassenger_service(),
            analytics=get_analytics_service(),
            metadata_key=settings.lead_metadata_key,
        ),
        analytics=get_analytics_service(),
        agent_webhook=AgentWebhookService(),
        scheduler=get_scheduler(),
        debounce_delay_seconds=settings.debounce_delay_seconds,
    )
