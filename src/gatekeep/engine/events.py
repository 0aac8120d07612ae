"""
In-process event bus for audit events.

Handlers are plain callables receiving the event name and a payload
dict. A failing handler is logged and skipped so audit consumers can
never change a decision.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from gatekeep.domain.events import AuditEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[AuditEvent, dict[str, Any]], None]

# Subscribing to this key receives every event.
ALL_EVENTS = "*"


class EventBus:
    """Synchronous publish/subscribe for AuditEvent notifications."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: AuditEvent | str, handler: EventHandler) -> None:
        """Register `handler` for `event`, or for every event with "*"."""
        key = event.value if isinstance(event, AuditEvent) else event
        self._handlers[key].append(handler)

    def unsubscribe(self, event: AuditEvent | str, handler: EventHandler) -> None:
        key = event.value if isinstance(event, AuditEvent) else event
        if handler in self._handlers.get(key, []):
            self._handlers[key].remove(handler)

    def emit(self, event: AuditEvent, payload: dict[str, Any] | None = None) -> None:
        """Deliver `event` to its handlers and to wildcard handlers."""
        payload = payload or {}
        handlers = [*self._handlers.get(event.value, []), *self._handlers.get(ALL_EVENTS, [])]
        for handler in handlers:
            try:
                handler(event, payload)
            except Exception:
                logger.exception("Audit handler failed for %s", event.value)

    def clear(self) -> None:
        self._handlers.clear()
