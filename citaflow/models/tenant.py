from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from citaflow.models.location import Location


class AvailabilityStrategy(str, Enum):
    GLOBAL = "GLOBAL"
    PER_LOCATION = "PER_LOCATION"


@dataclass(frozen=True)
class ReminderTemplate:
    minutes_before: int
    message: str


DEFAULT_REMINDER_TEMPLATES = (
    ReminderTemplate(
        minutes_before=24 * 60,
        message="Hola {name}, te recordamos tu cita mañana {date} a las {time}{location}.",
    ),
    ReminderTemplate(
        minutes_before=2 * 60,
        message="Hola {name}, tu cita es hoy a las {time}{location}. ¡Te esperamos!",
    ),
)


@dataclass(frozen=True)
class Tenant:
    id: str
    slug: str
    timezone: str
    device_id: str
    availability_strategy: AvailabilityStrategy = AvailabilityStrategy.PER_LOCATION
    webhook_url: Optional[str] = None
    availability_calendars: tuple[str, ...] = field(default_factory=tuple)
    booking_calendar_id: Optional[str] = None
    locations: dict[str, Location] = field(default_factory=dict, hash=False)
    wassenger_api_key: Optional[str] = None
    meta_pixel_id: Optional[str] = None
    meta_access_token: Optional[str] = None
    google_service_account_file: Optional[str] = None
    reminder_templates: tuple[ReminderTemplate, ...] = DEFAULT_REMINDER_TEMPLATES
    booking_summary_template: str = "Evaluación Dental: {name}"
    is_active: bool = True

    def get_location(self, name: str) -> Optional[Location]:
        return self.locations.get(name)
