from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from citaflow.logging_config import get_logger
from citaflow.services.scheduler import Scheduler, TimerHandle

logger = get_logger("debounce_buffer")

FlushHandler = Callable[[str, str, dict[str, Any]], Awaitable[None]]


@dataclass
class DebounceEntry:
    messages: list[str]
    context: dict[str, Any]
    handle: Optional[TimerHandle] = field(default=None, repr=False)


class DebounceBuffer:
    """Coalesce bursts of messages per conversation into one delivery.

    Trailing debounce: every new message for a key cancels the pending flush and schedules
    a new one ``delay_seconds`` later, so a flush only happens after that much silence.
    The flush carries the context of the last message received.
    """

    def __init__(self, deliver: FlushHandler, scheduler: Scheduler, delay_seconds: float = 15.0):
        self._deliver = deliver
        self._scheduler = scheduler
        self._delay_seconds = delay_seconds
        self._entries: dict[str, DebounceEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def pending_messages(self, key: str) -> list[str]:
        entry = self._entries.get(key)
        return list(entry.messages) if entry else []

    def on_message(self, key: str, body: str, context: dict[str, Any]) -> int:
        """Buffer ``body`` and (re)arm the flush timer. Returns the buffered count."""
        entry = self._entries.get(key)
        if entry is None:
            entry = DebounceEntry(messages=[body], context=context)
            self._entries[key] = entry
        else:
            if entry.handle is not None:
                entry.handle.cancel()
            entry.messages.append(body)
            entry.context = context

        entry.handle = self._scheduler.call_later(self._delay_seconds, partial(self._fire, key, entry))
        return len(entry.messages)

    def _fire(self, key: str, entry: DebounceEntry) -> None:
        if self._entries.get(key) is not entry:
            return
        del self._entries[key]
        combined = " ".join(entry.messages)
        logger.info(
            "Flushing buffered messages",
            extra={"context": {"key": key, "count": len(entry.messages)}},
        )
        self._scheduler.spawn(self._flush(key, combined, entry.context))

    async def _flush(self, key: str, combined: str, context: dict[str, Any]) -> None:
        try:
            await self._deliver(key, combined, context)
        except Exception as exc:
            logger.error(
                "Buffered message delivery failed",
                extra={"context": {"key": key, "error": str(exc)}},
            )

    def cancel_all(self) -> int:
        """Drop every pending flush (process shutdown). Buffered messages are lost."""
        dropped = len(self._entries)
        for entry in self._entries.values():
            if entry.handle is not None:
                entry.handle.cancel()
        self._entries.clear()
        if dropped:
            logger.warning(f"Dropped {dropped} pending debounce buffers on shutdown")
        return dropped
