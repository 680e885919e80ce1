"""Event publisher - hands serialized domain events to a sink."""
from datetime import date, datetime
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

# Receives (event_type, json_payload)
EventSink = Callable[[str, str], None]


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


def _encode(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def log_sink(event_type: str, payload: str) -> None:
    logger.info(f"event:{event_type} {payload}")


class EventPublisher:
    """
    Publishes booking events.

    The default sink only logs; a deployment wires a queue or outbox
    writer in its place.
    """

    def __init__(self, sink: Optional[EventSink] = None):
        self.sink = sink or log_sink

    def publish(self, event: Event) -> None:
        self.sink(type(event).__name__, json.dumps(event.to_dict(), default=_encode))


class RecordingSink:
    """Keeps published events in memory, decoded."""

    def __init__(self) -> None:
        self.events: List[tuple[str, Dict[str, Any]]] = []

    def __call__(self, event_type: str, payload: str) -> None:
        self.events.append((event_type, json.loads(payload)))
