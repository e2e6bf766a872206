import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from citaflow.errors import ConfigurationError, ConflictError, LocationNotFound
from citaflow.logging_config import get_logger
from citaflow.models import AvailabilityStrategy, BookingRequest, Location, PatientData, Tenant
from citaflow.services.analytics_service import AnalyticsService, EventType
from citaflow.services.availability_service import AvailabilityService, parse_input_datetime
from citaflow.services.calendar_service import CalendarProvider
from citaflow.services.conversion_service import ConversionService
from citaflow.services.reminder_service import ReminderService

logger = get_logger("booking_service")


@dataclass(frozen=True)
class BookingTarget:
    booking_calendar_id: Optional[str]
    check_calendars: tuple[str, ...]
    location: Optional[Location] = None


def resolve_booking_target(tenant: Tenant, location: Optional[str] = None) -> BookingTarget:
    """Where the event is written and which calendars must be free.

    A named location always supplies the booking calendar. The conflict check set follows
    the tenant strategy: GLOBAL keeps the tenant-level set.
    """
    if not location:
        return BookingTarget(tenant.booking_calendar_id, tenant.availability_calendars)

    resolved = tenant.get_location(location)
    if resolved is None:
        raise LocationNotFound(location, tenant.slug)
    if tenant.availability_strategy == AvailabilityStrategy.GLOBAL:
        check = tenant.availability_calendars
    else:
        check = resolved.availability_calendars
    return BookingTarget(resolved.booking_calendar_id, check, resolved)


@dataclass
class BookingResult:
    event_id: Optional[str]
    calendar_id: str
    start: datetime
    end: datetime
    warnings: list[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "eventId": self.event_id,
            "calendar_id": self.calendar_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "warnings": self.warnings,
        }


class BookingService:
    def __init__(
        self,
        calendar: CalendarProvider,
        availability: AvailabilityService,
        reminders: ReminderService,
        conversions: ConversionService,
        analytics: AnalyticsService,
    ):
        self.calendar = calendar
        self.availability = availability
        self.reminders = reminders
        self.conversions = conversions
        self.analytics = analytics

    def build_request(
        self,
        tenant: Tenant,
        patient: PatientData,
        start: str,
        end: str,
        description: str = "",
        location: Optional[Location] = None,
    ) -> BookingRequest:
        tz = ZoneInfo(tenant.timezone)
        start_at = parse_input_datetime(start, tz)
        end_at = parse_input_datetime(end, tz)
        if end_at <= start_at:
            raise ValueError("end_time must be after start_time")
        return BookingRequest(
            tenant=tenant,
            patient=patient,
            start=start_at,
            end=end_at,
            description=description,
            location=location,
        )

    async def create_appointment(
        self,
        tenant: Tenant,
        patient: PatientData,
        start: str,
        end: str,
        description: str = "",
        location: Optional[str] = None,
    ) -> BookingResult:
        target = resolve_booking_target(tenant, location)
        if not target.booking_calendar_id:
            raise ConfigurationError(f"Tenant {tenant.slug} has no booking calendar configured")
        request = self.build_request(tenant, patient, start, end, description, target.location)

        # Commit-time re-check over the exact requested interval.
        slots = await self.availability.fetch_busy_slots(
            tenant, target.check_calendars, request.start, request.end
        )
        conflicts = [slot for slot in slots if slot.overlaps(request.start, request.end)]
        if conflicts:
            logger.info(
                "Booking rejected, slot taken",
                extra={
                    "context": {
                        "tenant": tenant.slug,
                        "start": request.start.isoformat(),
                        "conflicts": len(conflicts),
                    }
                },
            )
            raise ConflictError(conflicts=conflicts)

        event = await self.calendar.insert_event(
            tenant,
            target.booking_calendar_id,
            {
                "summary": tenant.booking_summary_template.format(name=patient.name),
                "description": request.description,
                "start": {"dateTime": request.start.isoformat(), "timeZone": tenant.timezone},
                "end": {"dateTime": request.end.isoformat(), "timeZone": tenant.timezone},
            },
        )
        result = BookingResult(
            event_id=event.get("id"),
            calendar_id=target.booking_calendar_id,
            start=request.start,
            end=request.end,
        )
        self.analytics.record_event(tenant.slug, EventType.APPOINTMENT, patient.phone)

        result.warnings = await self._run_side_effects(request)
        return result

    async def _run_side_effects(self, request: BookingRequest) -> list[str]:
        tenant, patient = request.tenant, request.patient
        user_data = {"phone": patient.phone}
        if patient.email:
            user_data["email"] = patient.email

        outcomes = await asyncio.gather(
            self.reminders.schedule_appointment_reminders(tenant, patient, request.start, request.location),
            self.conversions.send_event(tenant, "Schedule", user_data),
            return_exceptions=True,
        )
        warnings = []
        for label, outcome in zip(("reminders", "schedule_event"), outcomes):
            if isinstance(outcome, Exception):
                message = getattr(outcome, "message", str(outcome))
                warnings.append(f"{label}: {message}")
                logger.warning(
                    "Booking side effect failed",
                    extra={"context": {"tenant": tenant.slug, "side_effect": label, "error": message}},
                )
        return warnings
