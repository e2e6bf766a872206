from collections import Counter, deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

from citaflow.logging_config import get_logger
from citaflow.services.scheduler import Clock, SystemClock

logger = get_logger("analytics_service")

RECENT_EVENTS_LIMIT = 100


class EventType(str, Enum):
    MESSAGE = "MESSAGE"
    NEW_CONVERSATION = "NEW_CONVERSATION"
    HANDOFF = "HANDOFF"
    LEAD = "LEAD"
    APPOINTMENT = "APPOINTMENT"


@dataclass(frozen=True)
class AnalyticsEvent:
    tenant_slug: str
    event_type: EventType
    conversation_key: Optional[str]
    timestamp: float


class AnalyticsService:
    """In-memory business event counters per tenant. Lost on restart."""

    def __init__(self, clock: Optional[Clock] = None, recent_limit: int = RECENT_EVENTS_LIMIT):
        self._clock = clock or SystemClock()
        self._recent_limit = recent_limit
        self._counters: dict[str, Counter] = {}
        self._recent: dict[str, deque] = {}

    def record_event(self, tenant_slug: str, event_type: EventType, conversation_key: Optional[str] = None) -> AnalyticsEvent:
        event = AnalyticsEvent(
            tenant_slug=tenant_slug,
            event_type=event_type,
            conversation_key=conversation_key,
            timestamp=self._clock.now(),
        )
        self._counters.setdefault(tenant_slug, Counter())[event_type.value] += 1
        self._recent.setdefault(tenant_slug, deque(maxlen=self._recent_limit)).append(event)
        logger.info(
            f"Analytics event {event_type.value}",
            extra={"context": {"tenant": tenant_slug, "conversation": conversation_key}},
        )
        return event

    def count(self, tenant_slug: str, event_type: EventType) -> int:
        return self._counters.get(tenant_slug, Counter())[event_type.value]

    def get_stats(self, tenant_slug: str) -> dict:
        counters = self._counters.get(tenant_slug, Counter())
        recent = self._recent.get(tenant_slug, ())
        return {
            "tenant": tenant_slug,
            "counts": {event_type.value: counters[event_type.value] for event_type in EventType},
            "recent": [
                {**asdict(event), "event_type": event.event_type.value}
                for event in reversed(list(recent))
            ],
        }
