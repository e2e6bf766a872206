import asyncio

from citaflow.services.analytics_service import AnalyticsService, EventType
from citaflow.services.scheduler import Scheduler


class TestScheduler:
    def test_drain_waits_for_nested_tasks(self):
        done = []

        async def scenario():
            scheduler = Scheduler()

            async def child():
                done.append("child")

            async def parent():
                scheduler.spawn(child())
                done.append("parent")

            scheduler.spawn(parent())
            await scheduler.drain()
            return scheduler.pending

        assert asyncio.run(scenario()) == 0
        assert done == ["parent", "child"]

    def test_failed_task_is_logged_not_raised(self, caplog):
        async def scenario():
            scheduler = Scheduler()

            async def broken():
                raise RuntimeError("boom")

            scheduler.spawn(broken())
            await scheduler.drain()

        asyncio.run(scenario())
        assert "Background task failed" in caplog.text

    def test_call_later_uses_running_loop(self):
        fired = []

        async def scenario():
            scheduler = Scheduler()
            handle = scheduler.call_later(0.01, lambda: fired.append("late"))
            cancelled = scheduler.call_later(0.01, lambda: fired.append("cancelled"))
            cancelled.cancel()
            await asyncio.sleep(0.05)
            return handle

        asyncio.run(scenario())
        assert fired == ["late"]


class TestAnalyticsService:
    def test_counts_per_tenant(self, clock):
        analytics = AnalyticsService(clock)
        analytics.record_event("a", EventType.MESSAGE, "1")
        analytics.record_event("a", EventType.MESSAGE, "2")
        analytics.record_event("b", EventType.LEAD, "1")

        assert analytics.count("a", EventType.MESSAGE) == 2
        assert analytics.count("b", EventType.MESSAGE) == 0
        assert analytics.get_stats("b")["counts"]["LEAD"] == 1

    def test_recent_events_bounded(self, clock):
        analytics = AnalyticsService(clock, recent_limit=3)
        for index in range(5):
            analytics.record_event("a", EventType.MESSAGE, str(index))

        recent = analytics.get_stats("a")["recent"]
        assert [event["conversation_key"] for event in recent] == ["4", "3", "2"]
        assert recent[0]["timestamp"] == clock.now()
