from citaflow.schemas.tools import (
    CheckAvailabilityRequest,
    ConversionEventRequest,
    CreateAppointmentRequest,
    HandoffRequest,
)
from citaflow.schemas.webhook import InboundMessage, OutboundMessage, parse_webhook_event

__all__ = [
    "CheckAvailabilityRequest",
    "ConversionEventRequest",
    "CreateAppointmentRequest",
    "HandoffRequest",
    "InboundMessage",
    "OutboundMessage",
    "parse_webhook_event",
]
