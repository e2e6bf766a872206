"""Calendar availability across a tenant's (or a location's) calendars.

Upstream queries use a wide UTC window around the requested day so no timezone offset can
push an event out of the result; the day filter afterwards compares local calendar days in
the tenant's timezone against the literal requested day string.
"""

import asyncio
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from citaflow.errors import CitaflowError, LocationNotFound
from citaflow.logging_config import get_logger
from citaflow.models import AvailabilityStrategy, BusySlot, Tenant
from citaflow.services.calendar_service import CalendarProvider
from citaflow.services.scheduler import Clock, SystemClock

logger = get_logger("availability_service")

QUERY_WINDOW_DAYS = 2
FREE_DAY_TEXT = "Todo el día está libre."
DAY_HEADER = "Agenda del día:"

_DMY_RE = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})(?:\s+(\d{2}):(\d{2}))?$")
_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_ISO_DAY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ]")


def parse_input_datetime(value: str, tz: ZoneInfo) -> datetime:
    """Parse ``DD.MM.YYYY[ HH:mm]``, ``YYYY-MM-DD`` or ISO 8601 into an aware datetime.

    Values without an offset are wall-clock times in ``tz``.
    """
    value = value.strip()
    match = _DMY_RE.match(value)
    if match:
        day, month, year, hour, minute = match.groups()
        return datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0), tzinfo=tz)

    match = _YMD_RE.match(value)
    if match:
        year, month, day = match.groups()
        return datetime(int(year), int(month), int(day), tzinfo=tz)

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Unrecognized date format: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def requested_day(value: str) -> Optional[str]:
    """The ``YYYY-MM-DD`` day written in ``value``, read off the text itself."""
    value = value.strip()
    match = _DMY_RE.match(value)
    if match:
        day, month, year = match.group(1), match.group(2), match.group(3)
        return f"{year}-{month}-{day}"
    if _YMD_RE.match(value):
        return value
    match = _ISO_DAY_RE.match(value)
    if match:
        return match.group(1)
    return None


def resolve_availability_calendars(tenant: Tenant, location: Optional[str] = None) -> tuple[str, ...]:
    if tenant.availability_strategy == AvailabilityStrategy.GLOBAL or not location:
        return tenant.availability_calendars
    resolved = tenant.get_location(location)
    if resolved is None:
        raise LocationNotFound(location, tenant.slug)
    return resolved.availability_calendars


def query_window(day: str, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds covering the local ``day`` plus two days either side."""
    local_day = date.fromisoformat(day)
    start = datetime.combine(local_day - timedelta(days=QUERY_WINDOW_DAYS), time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=QUERY_WINDOW_DAYS), time.max, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _event_instant(value: dict, tz: ZoneInfo) -> tuple[Optional[datetime], bool]:
    if value.get("dateTime"):
        parsed = datetime.fromisoformat(str(value["dateTime"]).replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=ZoneInfo(value["timeZone"]) if value.get("timeZone") else tz)
        return parsed, False
    if value.get("date"):
        return datetime.combine(date.fromisoformat(value["date"]), time.min, tzinfo=tz), True
    return None, False


def busy_slot_from_event(calendar_id: str, event: dict[str, Any], tz: ZoneInfo) -> Optional[BusySlot]:
    try:
        start, all_day = _event_instant(event.get("start") or {}, tz)
        end, _ = _event_instant(event.get("end") or {}, tz)
    except (ValueError, KeyError) as exc:
        logger.warning(
            "Skipping calendar event with unreadable times",
            extra={"context": {"calendar_id": calendar_id, "event_id": event.get("id"), "error": str(exc)}},
        )
        return None
    if start is None or end is None:
        return None
    return BusySlot(calendar_id=calendar_id, start=start, end=end, summary=event.get("summary"), all_day=all_day)


def render_day_context(slots: list[BusySlot], tz: ZoneInfo) -> str:
    if not slots:
        return FREE_DAY_TEXT
    lines = [
        f"{slot.start.astimezone(tz):%H:%M} - {slot.end.astimezone(tz):%H:%M} (Ocupado)"
        for slot in slots
    ]
    return "\n".join([DAY_HEADER, *lines])


@dataclass
class AvailabilityReport:
    available: bool
    day: str
    busy_slots: list[BusySlot] = field(default_factory=list)
    day_context: str = FREE_DAY_TEXT
    conflict: Optional[BusySlot] = None

    @property
    def status(self) -> str:
        return "Slot available" if self.available else "Slot busy"

    def to_payload(self) -> dict:
        conflict = None
        if self.conflict is not None:
            conflict = {
                "start": self.conflict.start.isoformat(),
                "end": self.conflict.end.isoformat(),
                "summary": self.conflict.summary,
            }
        return {
            "available": self.available,
            "status": self.status,
            "date": self.day,
            "day_context": self.day_context,
            "conflict": conflict,
        }


class AvailabilityService:
    def __init__(self, calendar: CalendarProvider, clock: Optional[Clock] = None):
        self.calendar = calendar
        self.clock = clock or SystemClock()

    async def _list_calendar(
        self, tenant: Tenant, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[BusySlot]:
        tz = ZoneInfo(tenant.timezone)
        try:
            events = await self.calendar.list_events(tenant, calendar_id, time_min, time_max)
        except CitaflowError as exc:
            logger.error(
                "Error fetching events from calendar",
                extra={"context": {"tenant": tenant.slug, "calendar_id": calendar_id, "error": exc.message}},
            )
            return []
        except Exception as exc:
            logger.error(
                "Unexpected error fetching events from calendar",
                extra={"context": {"tenant": tenant.slug, "calendar_id": calendar_id, "error": str(exc)}},
                exc_info=True,
            )
            return []
        slots = (busy_slot_from_event(calendar_id, event, tz) for event in events)
        return [slot for slot in slots if slot is not None]

    async def fetch_busy_slots(
        self, tenant: Tenant, calendar_ids: tuple[str, ...], time_min: datetime, time_max: datetime
    ) -> list[BusySlot]:
        """Union of busy slots across calendars. A failing calendar contributes nothing."""
        results = await asyncio.gather(
            *(self._list_calendar(tenant, calendar_id, time_min, time_max) for calendar_id in calendar_ids)
        )
        return [slot for slots in results for slot in slots]

    def _resolve_day(self, tz: ZoneInfo, start: Optional[datetime], query_date: Optional[str]) -> str:
        if query_date:
            day = requested_day(query_date)
            if day is None:
                raise ValueError(f"Unrecognized date format: {query_date!r}")
            return day
        if start is not None:
            return start.astimezone(tz).date().isoformat()
        return datetime.fromtimestamp(self.clock.now(), tz).date().isoformat()

    async def check_availability(
        self,
        tenant: Tenant,
        start: Optional[str] = None,
        end: Optional[str] = None,
        query_date: Optional[str] = None,
        location: Optional[str] = None,
    ) -> AvailabilityReport:
        tz = ZoneInfo(tenant.timezone)
        calendar_ids = resolve_availability_calendars(tenant, location)
        slot_start = parse_input_datetime(start, tz) if start else None
        slot_end = parse_input_datetime(end, tz) if end else None
        if slot_start is not None and slot_end is not None and slot_end <= slot_start:
            raise ValueError("end_time must be after start_time")

        day = self._resolve_day(tz, slot_start, query_date)
        if not calendar_ids:
            logger.warning(
                "No calendars configured, reporting the day as free",
                extra={"context": {"tenant": tenant.slug, "location": location}},
            )

        time_min, time_max = query_window(day, tz)
        slots = await self.fetch_busy_slots(tenant, calendar_ids, time_min, time_max)
        day_slots = sorted(
            (slot for slot in slots if not slot.all_day and slot.start.astimezone(tz).date().isoformat() == day),
            key=lambda slot: slot.start,
        )

        conflict = None
        if slot_start is not None and slot_end is not None:
            conflict = next((slot for slot in day_slots if slot.overlaps(slot_start, slot_end)), None)

        logger.info(
            "Availability checked",
            extra={
                "context": {
                    "tenant": tenant.slug,
                    "day": day,
                    "calendars": len(calendar_ids),
                    "busy": len(day_slots),
                    "conflict": conflict is not None,
                }
            },
        )
        return AvailabilityReport(
            available=conflict is None,
            day=day,
            busy_slots=day_slots,
            day_context=render_day_context(day_slots, tz),
            conflict=conflict,
        )
