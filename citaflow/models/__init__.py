from citaflow.models.booking import BookingRequest, BusySlot, PatientData
from citaflow.models.location import Location
from citaflow.models.tenant import (
    DEFAULT_REMINDER_TEMPLATES,
    AvailabilityStrategy,
    ReminderTemplate,
    Tenant,
)

__all__ = [
    "AvailabilityStrategy",
    "BookingRequest",
    "BusySlot",
    "DEFAULT_REMINDER_TEMPLATES",
    "Location",
    "PatientData",
    "ReminderTemplate",
    "Tenant",
]
