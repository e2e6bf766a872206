from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from citaflow.models.location import Location
from citaflow.models.tenant import Tenant


@dataclass(frozen=True)
class BusySlot:
    calendar_id: str
    start: datetime
    end: datetime
    summary: Optional[str] = None
    all_day: bool = False

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: touching intervals do not conflict."""
        return start < self.end and end > self.start


@dataclass(frozen=True)
class PatientData:
    name: str
    phone: str
    email: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BookingRequest:
    tenant: Tenant
    patient: PatientData
    start: datetime
    end: datetime
    description: str = ""
    location: Optional[Location] = None
