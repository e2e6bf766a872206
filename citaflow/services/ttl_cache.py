from typing import Hashable, Optional

from citaflow.logging_config import get_logger

logger = get_logger("ttl_cache")


class TTLCache:
    """Key -> write timestamp with lazy expiry and an explicit sweep.

    An entry is live while ``now - written_at < ttl``. Expired entries are treated as
    absent by every read even before ``sweep`` removes them.
    """

    def __init__(self, name: str, ttl_seconds: float):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._entries: dict[Hashable, float] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, key: Hashable, now: float) -> None:
        self._entries[key] = now
        self.sweep(now)

    def get(self, key: Hashable, now: float) -> Optional[float]:
        """Return the write timestamp of a live entry, else None."""
        written_at = self._entries.get(key)
        if written_at is None or now - written_at >= self.ttl_seconds:
            return None
        return written_at

    def is_live(self, key: Hashable, now: float) -> bool:
        return self.get(key, now) is not None

    def remaining(self, key: Hashable, now: float) -> float:
        written_at = self.get(key, now)
        if written_at is None:
            return 0.0
        return self.ttl_seconds - (now - written_at)

    def remove(self, key: Hashable) -> bool:
        return self._entries.pop(key, None) is not None

    def sweep(self, now: float) -> int:
        """Drop expired entries. Returns how many were removed."""
        expired = [key for key, written_at in self._entries.items() if now - written_at >= self.ttl_seconds]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.info(
                f"Cache cleanup removed {len(expired)} expired entries",
                extra={"context": {"cache": self.name, "removed": len(expired), "remaining": len(self._entries)}},
            )
        return len(expired)
