from datetime import datetime, timezone

import pytest

from citaflow.models import AvailabilityStrategy, Location, Tenant
from citaflow.services.scheduler import Scheduler

START_TIME = datetime(2025, 12, 7, 12, 0, tzinfo=timezone.utc).timestamp()


class ManualClock:
    def __init__(self, start: float = START_TIME):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    def set(self, value: datetime) -> None:
        self.current = value.timestamp()


class ManualTimer:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Timers fire only when the test advances the clock. Spawned tasks are real."""

    def __init__(self, clock: ManualClock):
        super().__init__()
        self.clock = clock
        self.timers: list[ManualTimer] = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.clock.now() + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active_timers(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled]

    def advance(self, seconds: float) -> None:
        self.clock.advance(seconds)
        due = sorted(
            (timer for timer in self.active_timers if timer.when <= self.clock.now()),
            key=lambda timer: timer.when,
        )
        for timer in due:
            self.timers.remove(timer)
            timer.callback()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def make_tenant():
    def _make(**overrides) -> Tenant:
        config = {
            "id": "t-1",
            "slug": "clinica-sonrisa",
            "timezone": "America/Mexico_City",
            "device_id": "dev-1",
            "availability_strategy": AvailabilityStrategy.PER_LOCATION,
            "webhook_url": "https://agent.example.com/hook",
            "availability_calendars": ("cal-a", "cal-b", "cal-c"),
            "booking_calendar_id": "cal-a",
            "locations": {
                "Centro": Location(
                    name="Centro",
                    booking_calendar_id="cal-centro",
                    availability_calendars=("cal-centro", "cal-dr-lopez"),
                    address="Av. Juárez 10",
                ),
                "Norte": Location(name="Norte", booking_calendar_id="cal-norte", availability_calendars=("cal-norte",)),
            },
            "wassenger_api_key": "wa-key",
            "meta_pixel_id": "123456",
            "meta_access_token": "meta-token",
        }
        config.update(overrides)
        return Tenant(**config)

    return _make


@pytest.fixture
def tenant(make_tenant):
    return make_tenant()
