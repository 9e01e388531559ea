"""In-memory outbox of form events awaiting the view binder."""

from __future__ import annotations

import copy
import logging
from typing import List

from event_bus import Event, validate_event


logger = logging.getLogger("formkit.outbox")


class Outbox:
    """Pending events in publish order.

    With ``max_pending`` set, the oldest unacknowledged events are dropped
    once the queue grows past it.
    """

    def __init__(self, max_pending: int | None = None) -> None:
        if max_pending is not None and max_pending < 1:
            raise ValueError("max_pending must be positive")
        self.max_pending = max_pending
        self.dropped = 0
        self._events: List[Event] = []

    def __len__(self) -> int:
        return len(self._events)

    def enqueue(self, event: dict) -> None:
        validate_event(event)
        self._events.append(copy.deepcopy(event))
        if self.max_pending is not None and len(self._events) > self.max_pending:
            overflow = len(self._events) - self.max_pending
            del self._events[:overflow]
            self.dropped += overflow
            logger.warning(
                "outbox_overflow form_id=%s dropped=%s max_pending=%s",
                event.get("meta", {}).get("form_id"),
                overflow,
                self.max_pending,
            )

    def pending(self, name: str | None = None) -> list[dict]:
        if name is None:
            return [copy.deepcopy(e) for e in self._events]
        return [copy.deepcopy(e) for e in self._events if e.get("name") == name]

    def ack(self, event_id: str) -> bool:
        for idx, event in enumerate(self._events):
            if event.get("meta", {}).get("event_id") == event_id:
                del self._events[idx]
                return True
        return False

    def ack_many(self, event_ids: list[str]) -> int:
        wanted = set(event_ids)
        kept = [e for e in self._events if e.get("meta", {}).get("event_id") not in wanted]
        acked = len(self._events) - len(kept)
        self._events = kept
        return acked

    def clear(self) -> None:
        self._events.clear()
