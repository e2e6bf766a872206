import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from citaflow.errors import ConfigurationError
from citaflow.services.analytics_service import AnalyticsService, EventType
from citaflow.services.handoff_guard import HandoffGuard
from citaflow.services.inbound_service import InboundEventRouter, WebhookOutcome
from citaflow.services.lead_deduplicator import LeadDeduplicator
from citaflow.services.ttl_cache import TTLCache
from tests.factories import make_inbound_payload, make_outbound_payload


@pytest.fixture
def tenants(tenant):
    resolver = Mock()
    resolver.get_tenant_by_device_id = AsyncMock(side_effect=lambda device_id: tenant if device_id == "dev-1" else None)
    return resolver


@pytest.fixture
def agent_webhook():
    service = Mock()
    service.forward = AsyncMock(return_value=200)
    return service


@pytest.fixture
def conversions():
    service = Mock()
    service.send_event = AsyncMock(return_value={})
    return service


@pytest.fixture
def analytics(clock):
    return AnalyticsService(clock)


@pytest.fixture
def inbound(tenants, clock, scheduler, agent_webhook, conversions, analytics):
    messaging = Mock()
    messaging.update_contact_metadata = AsyncMock(return_value={})
    return InboundEventRouter(
        tenants=tenants,
        handoff=HandoffGuard(TTLCache("handoff", 1800), clock),
        lead=LeadDeduplicator(TTLCache("lead_guard", 300), clock, scheduler, conversions, messaging, analytics),
        analytics=analytics,
        agent_webhook=agent_webhook,
        scheduler=scheduler,
        debounce_delay_seconds=15,
    )


def run(coro_factory):
    return asyncio.run(coro_factory())


class TestInboundFlow:
    def test_buffers_and_forwards_combined_body(self, inbound, scheduler, agent_webhook):
        async def scenario():
            outcomes = [
                await inbound.handle(make_inbound_payload(body="Hola")),
                await inbound.handle(make_inbound_payload(body="quiero cita")),
            ]
            scheduler.advance(15)
            await scheduler.drain()
            return outcomes

        assert run(scenario) == [WebhookOutcome.BUFFERED, WebhookOutcome.BUFFERED]
        agent_webhook.forward.assert_awaited_once()
        url, payload = agent_webhook.forward.await_args.args
        assert url == "https://agent.example.com/hook"
        assert payload["data"]["body"] == "Hola quiero cita"
        assert payload["data"]["fromNumber"] == "5215512345678"
        assert payload["device"] == {"id": "dev-1"}

    def test_records_message_analytics(self, inbound, scheduler, analytics, tenant):
        async def scenario():
            await inbound.handle(make_inbound_payload(is_first=True))
            await scheduler.drain()

        run(scenario)

        assert analytics.count(tenant.slug, EventType.MESSAGE) == 1
        assert analytics.count(tenant.slug, EventType.NEW_CONVERSATION) == 1

    def test_irrelevant_events_acknowledged(self, inbound, agent_webhook):
        async def scenario():
            return [
                await inbound.handle({"event": "message:reaction:new"}),
                await inbound.handle(make_inbound_payload(body="")),
                await inbound.handle("not a dict"),
            ]

        assert run(scenario) == [WebhookOutcome.ACKNOWLEDGED] * 3
        agent_webhook.forward.assert_not_awaited()

    def test_slash_event_names_accepted(self, inbound):
        async def scenario():
            return await inbound.handle(make_inbound_payload(event="message/in/new"))

        assert run(scenario) == WebhookOutcome.BUFFERED

    def test_unknown_device_drops_flush(self, inbound, scheduler, agent_webhook):
        async def scenario():
            outcome = await inbound.handle(make_inbound_payload(device_id="dev-x"))
            scheduler.advance(15)
            await scheduler.drain()
            return outcome

        assert run(scenario) == WebhookOutcome.BUFFERED
        agent_webhook.forward.assert_not_awaited()

    def test_missing_webhook_url_drops_flush(self, inbound, tenants, make_tenant, scheduler, agent_webhook):
        tenants.get_tenant_by_device_id.side_effect = None
        tenants.get_tenant_by_device_id.return_value = make_tenant(webhook_url=None)

        async def scenario():
            await inbound.handle(make_inbound_payload())
            scheduler.advance(15)
            await scheduler.drain()

        run(scenario)
        agent_webhook.forward.assert_not_awaited()

    def test_tenant_lookup_error_is_not_fatal(self, inbound, tenants, scheduler):
        tenants.get_tenant_by_device_id.side_effect = ConfigurationError("broken tenants file")

        async def scenario():
            outcome = await inbound.handle(make_inbound_payload())
            scheduler.advance(15)
            await scheduler.drain()
            return outcome

        assert run(scenario) == WebhookOutcome.BUFFERED

    def test_concurrent_lead_events_send_once(self, inbound, scheduler, conversions):
        async def scenario():
            await asyncio.gather(*(inbound.handle(make_inbound_payload(body=f"m{i}")) for i in range(5)))
            await scheduler.drain()

        run(scenario)
        conversions.send_event.assert_awaited_once()


class TestHandoffFlow:
    def test_human_reply_suppresses_automation(self, inbound, scheduler, agent_webhook, analytics, tenant):
        async def scenario():
            ack = await inbound.handle(make_outbound_payload())
            await scheduler.drain()
            suppressed = await inbound.handle(make_inbound_payload())
            scheduler.advance(15)
            await scheduler.drain()
            return ack, suppressed

        assert run(scenario) == (WebhookOutcome.ACKNOWLEDGED, WebhookOutcome.SUPPRESSED_BY_HANDOFF)
        agent_webhook.forward.assert_not_awaited()
        assert analytics.count(tenant.slug, EventType.HANDOFF) == 1
        assert analytics.count(tenant.slug, EventType.MESSAGE) == 0

    def test_automation_resumes_after_timeout(self, inbound, scheduler, clock):
        async def scenario():
            await inbound.handle(make_outbound_payload())
            clock.advance(30 * 60)
            return await inbound.handle(make_inbound_payload())

        assert run(scenario) == WebhookOutcome.BUFFERED

    def test_api_messages_do_not_trigger_handoff(self, inbound):
        async def scenario():
            await inbound.handle(make_outbound_payload(agent=None))
            return await inbound.handle(make_inbound_payload())

        assert run(scenario) == WebhookOutcome.BUFFERED

    def test_humano_label(self, inbound, agent_webhook):
        async def scenario():
            return await inbound.handle(make_inbound_payload(labels=["humano"]))

        assert run(scenario) == WebhookOutcome.SUPPRESSED_BY_LABEL
        assert run(scenario).value == 'Suppressed by "humano" label'


class TestShutdown:
    def test_shutdown_cancels_pending_flushes(self, inbound, scheduler, agent_webhook):
        async def scenario():
            await inbound.handle(make_inbound_payload())
            dropped = inbound.shutdown()
            scheduler.advance(15)
            await scheduler.drain()
            return dropped

        assert run(scenario) == 1
        agent_webhook.forward.assert_not_awaited()
