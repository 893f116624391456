from __future__ import annotations
import threading
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol

from tabletasks.core.errors import RateLimited
from tabletasks.io.schemas import UsageEvent, utcnow


class UsageEventStore(Protocol):
    def insert(self, event: UsageEvent) -> UsageEvent: ...

    def count_recent(self, event_type: str, owner_id: Optional[str] = None, minutes: int = 1) -> int: ...


class InMemoryUsageEventStore:
    def __init__(self):
        self.events: List[UsageEvent] = []
        self._lock = threading.Lock()

    def insert(self, event: UsageEvent) -> UsageEvent:
        with self._lock:
            self.events.append(event)
        return event

    def count_recent(self, event_type: str, owner_id: Optional[str] = None, minutes: int = 1) -> int:
        since = utcnow() - timedelta(minutes=minutes)
        with self._lock:
            return sum(
                1 for e in self.events
                if e.event_type == event_type
                and e.created_at >= since
                and (owner_id is None or e.owner_id == owner_id)
            )


def write_usage_event(
    store: UsageEventStore,
    owner_id: str,
    event_type: str,
    resource_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> UsageEvent:
    event = UsageEvent(
        id=uuid.uuid4().hex,
        owner_id=owner_id,
        event_type=event_type,
        resource_id=resource_id,
        metadata=metadata or {},
        request_id=request_id,
    )
    return store.insert(event)


def enforce_rate_limit(store: UsageEventStore, owner_id: str, event_type: str, limit_per_minute: int):
    """Raise ``RateLimited`` once ``owner_id`` has used up this minute's ``event_type`` budget.

    A limit of 0 or less disables the check.
    """
    if limit_per_minute <= 0:
        return
    hits = store.count_recent(event_type, owner_id=owner_id, minutes=1)
    if hits >= limit_per_minute:
        raise RateLimited(f"Limit is {limit_per_minute} {event_type} events per minute.")
