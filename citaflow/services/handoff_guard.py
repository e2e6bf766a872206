from dataclasses import dataclass
from enum import Enum
from typing import Optional

from citaflow.logging_config import get_logger
from citaflow.schemas.webhook import InboundMessage
from citaflow.services.scheduler import Clock
from citaflow.services.ttl_cache import TTLCache
from citaflow.services.wassenger_service import to_chat_wid

logger = get_logger("handoff_guard")


class SuppressionReason(str, Enum):
    LABEL = "label"
    HUMAN_ACTIVE = "human_active"


@dataclass(frozen=True)
class HandoffDecision:
    suppressed: bool
    reason: Optional[SuppressionReason] = None
    remaining_seconds: float = 0.0


ALLOW = HandoffDecision(suppressed=False)


class HandoffGuard:
    """Decides whether automation must stay quiet because a human owns the conversation.

    The chat label is permanent suppression and is checked first. Otherwise a recent
    outbound message from a human operator suppresses inbound handling until the cache
    TTL runs out.
    """

    def __init__(self, cache: TTLCache, clock: Clock, label: str = "humano"):
        self.cache = cache
        self.clock = clock
        self.label = label

    @staticmethod
    def key(device_id: Optional[str], jid: str) -> str:
        return f"{device_id or '-'}:{to_chat_wid(jid)}"

    def record_human_activity(self, device_id: Optional[str], jid: str) -> None:
        key = self.key(device_id, jid)
        self.cache.put(key, self.clock.now())
        logger.info("Human handoff detected", extra={"context": {"key": key}})

    def check(self, message: InboundMessage) -> HandoffDecision:
        if self.label in message.data.labels:
            return HandoffDecision(suppressed=True, reason=SuppressionReason.LABEL)

        key = self.key(message.device_id, message.jid)
        now = self.clock.now()
        if self.cache.is_live(key, now):
            return HandoffDecision(
                suppressed=True,
                reason=SuppressionReason.HUMAN_ACTIVE,
                remaining_seconds=self.cache.remaining(key, now),
            )

        if self.cache.remove(key):
            logger.info("Handoff expired, automation resumed", extra={"context": {"key": key}})
        return ALLOW
