"""
OpenTelemetry adapter for Gatekeep.

Records audit events from an EventBus as OTel spans so decisions and
executions show up in existing observability infrastructure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

from gatekeep.engine.events import ALL_EVENTS

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

    from gatekeep.domain.events import AuditEvent
    from gatekeep.engine.events import EventBus

_ATTRIBUTE_TYPES = (str, bool, int, float)


def flatten_attributes(payload: dict[str, Any], prefix: str = "gatekeep") -> dict[str, Any]:
    """
    Flatten a payload into OTel-compatible attributes.

    Nested mappings become dotted keys, lists of scalars are kept, None is
    dropped and anything else is stringified.
    """
    attributes: dict[str, Any] = {}
    for key, value in payload.items():
        name = f"{prefix}.{key}"
        if value is None:
            continue
        if isinstance(value, dict):
            attributes.update(flatten_attributes(value, name))
        elif isinstance(value, _ATTRIBUTE_TYPES):
            attributes[name] = value
        elif isinstance(value, (list, tuple)) and all(
            isinstance(item, _ATTRIBUTE_TYPES) for item in value
        ):
            attributes[name] = list(value)
        else:
            attributes[name] = str(value)
    return attributes


class OtelAuditSink:
    """
    Event bus subscriber that emits one span per audit event.

    Usage:
        sink = OtelAuditSink(service_name="gatekeep")
        sink.attach(bus)
    """

    def __init__(
        self,
        service_name: str = "gatekeep",
        enabled: bool = True,
        tracer: Tracer | None = None,
    ) -> None:
        """
        Initialize the sink.

        Args:
            service_name: Name of the service for spans.
            enabled: Whether spans are recorded.
            tracer: Explicit tracer; a new SDK provider is set up when omitted.
        """
        self.service_name = service_name
        self.enabled = enabled
        self._tracer = tracer

        if enabled and tracer is None:
            self._init_tracer()

    def _init_tracer(self) -> None:
        """Initialize the OpenTelemetry tracer."""
        resource = Resource.create({"service.name": self.service_name})
        provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(provider)
        self._tracer = trace.get_tracer(__name__)

    def attach(self, events: EventBus) -> None:
        events.subscribe(ALL_EVENTS, self.record)

    def detach(self, events: EventBus) -> None:
        events.unsubscribe(ALL_EVENTS, self.record)

    def record(self, event: AuditEvent, payload: dict[str, Any]) -> None:
        """Record `event` as a short span carrying the flattened payload."""
        if not self.enabled or self._tracer is None:
            return

        attributes = flatten_attributes(payload)
        attributes["gatekeep.event"] = event.value
        with self._tracer.start_as_current_span(f"gatekeep.{event.value}", attributes=attributes):
            pass
