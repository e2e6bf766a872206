from citaflow.services.debounce_buffer import DebounceBuffer
from citaflow.services.handoff_guard import HandoffDecision, HandoffGuard, SuppressionReason
from citaflow.services.lead_deduplicator import LeadDecision, LeadDeduplicator
from citaflow.services.scheduler import Clock, Scheduler, SystemClock
from citaflow.services.ttl_cache import TTLCache
