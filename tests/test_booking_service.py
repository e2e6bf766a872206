import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from citaflow.errors import ConfigurationError, ConflictError, LocationNotFound, UpstreamProviderError
from citaflow.models import AvailabilityStrategy, PatientData
from citaflow.services.analytics_service import AnalyticsService, EventType
from citaflow.services.availability_service import AvailabilityService
from citaflow.services.booking_service import BookingService, resolve_booking_target
from tests.factories import FakeCalendar, calendar_event

PATIENT = PatientData(name="Ana López", phone="5215512345678", email="ana@example.com")
START = "2025-12-09T10:00:00-06:00"
END = "2025-12-09T10:30:00-06:00"


@pytest.fixture
def reminders():
    service = Mock()
    service.schedule_appointment_reminders = AsyncMock(return_value=2)
    return service


@pytest.fixture
def conversions():
    service = Mock()
    service.send_event = AsyncMock(return_value={})
    return service


@pytest.fixture
def analytics(clock):
    return AnalyticsService(clock)


def make_service(calendar, clock, reminders, conversions, analytics):
    return BookingService(
        calendar=calendar,
        availability=AvailabilityService(calendar, clock),
        reminders=reminders,
        conversions=conversions,
        analytics=analytics,
    )


class TestBookingTarget:
    def test_tenant_defaults(self, tenant):
        target = resolve_booking_target(tenant)
        assert target.booking_calendar_id == "cal-a"
        assert target.check_calendars == ("cal-a", "cal-b", "cal-c")
        assert target.location is None

    def test_location_overrides_booking_calendar(self, tenant):
        target = resolve_booking_target(tenant, "Centro")
        assert target.booking_calendar_id == "cal-centro"
        assert target.check_calendars == ("cal-centro", "cal-dr-lopez")

    def test_global_keeps_tenant_check_set(self, make_tenant):
        tenant = make_tenant(availability_strategy=AvailabilityStrategy.GLOBAL)
        target = resolve_booking_target(tenant, "Centro")
        assert target.booking_calendar_id == "cal-centro"
        assert target.check_calendars == ("cal-a", "cal-b", "cal-c")

    def test_unknown_location(self, tenant):
        with pytest.raises(LocationNotFound):
            resolve_booking_target(tenant, "Sur")


class TestCreateAppointment:
    def test_books_free_slot(self, tenant, clock, reminders, conversions, analytics):
        calendar = FakeCalendar()
        service = make_service(calendar, clock, reminders, conversions, analytics)

        result = asyncio.run(service.create_appointment(tenant, PATIENT, START, END, description="Limpieza"))

        assert result.event_id == "evt-1"
        assert result.warnings == []
        calendar_id, body = calendar.inserted[0]
        assert calendar_id == "cal-a"
        assert body["summary"] == "Evaluación Dental: Ana López"
        assert body["description"] == "Limpieza"
        assert body["start"] == {"dateTime": START, "timeZone": "America/Mexico_City"}
        assert analytics.count(tenant.slug, EventType.APPOINTMENT) == 1

    def test_runs_side_effects(self, tenant, clock, reminders, conversions, analytics):
        service = make_service(FakeCalendar(), clock, reminders, conversions, analytics)

        result = asyncio.run(service.create_appointment(tenant, PATIENT, START, END, location="Centro"))

        reminders.schedule_appointment_reminders.assert_awaited_once()
        args = reminders.schedule_appointment_reminders.await_args.args
        assert args[0] is tenant
        assert args[1] == PATIENT
        assert args[2] == result.start
        assert args[3].name == "Centro"
        conversions.send_event.assert_awaited_once_with(
            tenant, "Schedule", {"phone": "5215512345678", "email": "ana@example.com"}
        )

    def test_conflict_aborts_without_insert(self, tenant, clock, reminders, conversions, analytics):
        calendar = FakeCalendar({"cal-b": [calendar_event("2025-12-09T10:15:00-06:00", "2025-12-09T11:00:00-06:00")]})
        service = make_service(calendar, clock, reminders, conversions, analytics)

        with pytest.raises(ConflictError) as exc_info:
            asyncio.run(service.create_appointment(tenant, PATIENT, START, END))

        assert exc_info.value.message == "Slot no longer available (Conflict detected)"
        assert len(exc_info.value.conflicts) == 1
        assert calendar.inserted == []
        reminders.schedule_appointment_reminders.assert_not_awaited()

    def test_recheck_uses_exact_window(self, tenant, clock, reminders, conversions, analytics):
        calendar = FakeCalendar({"cal-a": [calendar_event("2025-12-09T09:30:00-06:00", "2025-12-09T10:00:00-06:00")]})
        service = make_service(calendar, clock, reminders, conversions, analytics)

        result = asyncio.run(service.create_appointment(tenant, PATIENT, START, END))

        assert result.event_id == "evt-1"
        _, time_min, time_max = calendar.list_calls[0]
        assert time_min.isoformat() == START
        assert time_max.isoformat() == END

    def test_per_location_checks_only_location_calendars(self, tenant, clock, reminders, conversions, analytics):
        calendar = FakeCalendar({"cal-a": [calendar_event(START, END)]})
        service = make_service(calendar, clock, reminders, conversions, analytics)

        result = asyncio.run(service.create_appointment(tenant, PATIENT, START, END, location="Centro"))

        assert calendar.listed_calendars == {"cal-centro", "cal-dr-lopez"}
        assert result.calendar_id == "cal-centro"

    def test_global_checks_tenant_calendars(self, make_tenant, clock, reminders, conversions, analytics):
        tenant = make_tenant(availability_strategy=AvailabilityStrategy.GLOBAL)
        calendar = FakeCalendar({"cal-a": [calendar_event(START, END)]})
        service = make_service(calendar, clock, reminders, conversions, analytics)

        with pytest.raises(ConflictError):
            asyncio.run(service.create_appointment(tenant, PATIENT, START, END, location="Centro"))
        assert calendar.listed_calendars == {"cal-a", "cal-b", "cal-c"}

    def test_failing_calendar_does_not_block_booking(self, tenant, clock, reminders, conversions, analytics):
        calendar = FakeCalendar(failing={"cal-b"})
        service = make_service(calendar, clock, reminders, conversions, analytics)

        result = asyncio.run(service.create_appointment(tenant, PATIENT, START, END))

        assert result.event_id == "evt-1"

    def test_side_effect_failure_becomes_warning(self, tenant, clock, reminders, conversions, analytics):
        reminders.schedule_appointment_reminders.side_effect = UpstreamProviderError("wassenger", "down", 502)
        calendar = FakeCalendar()
        service = make_service(calendar, clock, reminders, conversions, analytics)

        result = asyncio.run(service.create_appointment(tenant, PATIENT, START, END))

        assert len(calendar.inserted) == 1
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("reminders: wassenger request failed (502)")
        conversions.send_event.assert_awaited_once()

    def test_missing_booking_calendar(self, make_tenant, clock, reminders, conversions, analytics):
        tenant = make_tenant(booking_calendar_id=None)
        service = make_service(FakeCalendar(), clock, reminders, conversions, analytics)

        with pytest.raises(ConfigurationError):
            asyncio.run(service.create_appointment(tenant, PATIENT, START, END))

    def test_end_before_start(self, tenant, clock, reminders, conversions, analytics):
        service = make_service(FakeCalendar(), clock, reminders, conversions, analytics)

        with pytest.raises(ValueError):
            asyncio.run(service.create_appointment(tenant, PATIENT, END, START))

    def test_payload(self, tenant, clock, reminders, conversions, analytics):
        service = make_service(FakeCalendar(), clock, reminders, conversions, analytics)

        payload = asyncio.run(service.create_appointment(tenant, PATIENT, START, END)).to_payload()

        assert payload["eventId"] == "evt-1"
        assert payload["start"] == START
        assert payload["warnings"] == []
