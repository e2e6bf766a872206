from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Location:
    """A sede: a sub-scope of a tenant with its own calendar subset."""

    name: str
    booking_calendar_id: str
    availability_calendars: tuple[str, ...] = field(default_factory=tuple)
    address: Optional[str] = None
