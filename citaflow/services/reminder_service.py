from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from citaflow.errors import CitaflowError, UpstreamProviderError
from citaflow.logging_config import get_logger
from citaflow.models import Location, PatientData, ReminderTemplate, Tenant
from citaflow.services.scheduler import Clock, SystemClock
from citaflow.services.wassenger_service import WassengerService

logger = get_logger("reminder_service")


def render_reminder(
    template: ReminderTemplate,
    patient: PatientData,
    start: datetime,
    tz: ZoneInfo,
    location: Optional[Location] = None,
) -> str:
    local_start = start.astimezone(tz)
    location_text = ""
    if location is not None:
        location_text = f" en {location.name}"
        if location.address:
            location_text += f" ({location.address})"
    return template.message.format(
        name=patient.name,
        date=local_start.strftime("%d.%m.%Y"),
        time=local_start.strftime("%H:%M"),
        location=location_text,
    )


class ReminderService:
    """Schedules appointment reminders as delayed WhatsApp messages."""

    def __init__(self, messaging: WassengerService, clock: Optional[Clock] = None):
        self.messaging = messaging
        self.clock = clock or SystemClock()

    async def schedule_appointment_reminders(
        self,
        tenant: Tenant,
        patient: PatientData,
        start: datetime,
        location: Optional[Location] = None,
    ) -> int:
        """Queue one message per template. Returns how many were scheduled.

        Templates whose send time already passed are skipped. Raises UpstreamProviderError
        when at least one reminder could not be scheduled.
        """
        tz = ZoneInfo(tenant.timezone)
        now = datetime.fromtimestamp(self.clock.now(), timezone.utc)
        scheduled = 0
        failures = []

        for template in tenant.reminder_templates:
            deliver_at = start - timedelta(minutes=template.minutes_before)
            if deliver_at <= now:
                logger.info(
                    "Skipping reminder in the past",
                    extra={"context": {"tenant": tenant.slug, "minutes_before": template.minutes_before}},
                )
                continue
            message = render_reminder(template, patient, start, tz, location)
            try:
                await self.messaging.send_message(tenant, patient.phone, message, deliver_at=deliver_at)
                scheduled += 1
            except CitaflowError as exc:
                failures.append(exc.message)
                logger.error(
                    "Failed to schedule reminder",
                    extra={
                        "context": {
                            "tenant": tenant.slug,
                            "minutes_before": template.minutes_before,
                            "error": exc.message,
                        }
                    },
                )

        if failures:
            raise UpstreamProviderError("wassenger", f"{len(failures)} reminder(s) not scheduled: {failures[0]}")
        logger.info(
            f"Scheduled {scheduled} reminders",
            extra={"context": {"tenant": tenant.slug, "start": start.isoformat()}},
        )
        return scheduled
