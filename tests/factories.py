from citaflow.errors import UpstreamProviderError


class FakeCalendar:
    """In-memory calendar provider. ``events`` maps calendar id to raw Google events."""

    def __init__(self, events=None, failing=(), raising=None):
        self.events = events or {}
        self.failing = set(failing)
        self.raising = dict(raising or {})
        self.list_calls = []
        self.inserted = []

    async def list_events(self, tenant, calendar_id, time_min, time_max):
        self.list_calls.append((calendar_id, time_min, time_max))
        if calendar_id in self.failing:
            raise UpstreamProviderError("google_calendar", "backend error", status_code=503)
        if calendar_id in self.raising:
            raise self.raising[calendar_id]
        return list(self.events.get(calendar_id, []))

    async def insert_event(self, tenant, calendar_id, body):
        self.inserted.append((calendar_id, body))
        return {"id": f"evt-{len(self.inserted)}", **body}

    @property
    def listed_calendars(self) -> set:
        return {call[0] for call in self.list_calls}


def calendar_event(start: str, end: str, summary: str = "Paciente") -> dict:
    return {"summary": summary, "start": {"dateTime": start}, "end": {"dateTime": end}}


def make_inbound_payload(
    body="Hola",
    phone="5215512345678",
    device_id="dev-1",
    is_first=False,
    labels=None,
    metadata=None,
    flow="inbound",
    event="message:in:new",
):
    return {
        "event": event,
        "device": {"id": device_id},
        "data": {
            "fromNumber": phone,
            "from": f"{phone}@c.us",
            "body": body,
            "flow": flow,
            "meta": {"isFirstMessage": is_first},
            "chat": {"labels": labels or [], "contact": {"metadata": metadata or []}},
        },
    }


def make_outbound_payload(to="5215512345678@c.us", device_id="dev-1", agent="68f0a1"):
    return {
        "event": "message:out:new",
        "device": {"id": device_id},
        "data": {"to": to, "body": "Hola, soy Laura", "agent": agent},
    }
