"""
Lifecycle events and the sinks that receive them

The engine publishes one event per meaningful state transition. Delivery is
fire-and-forget: a failing sink is logged and never blocks the engine.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from mms.logger import get_logger

logger = get_logger("mms.business.core.events")


EVENT_TYPES = frozenset({
    'equipment.created', 'equipment.updated', 'equipment.deleted',
    'inspection.created', 'inspection.updated', 'inspection.completed', 'inspection.cancelled',
    'backlog.created', 'backlog.updated', 'backlog.bulkUpdated',
    'workorder.created', 'workorder.updated', 'workorder.deleted',
    'pm.created', 'pm.updated', 'pm.completed',
})


@dataclass
class LifecycleEvent:
    """A typed notification carrying the updated entity (or its id, for deletions)"""
    event_type: str
    entity_id: Optional[int]
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.event_type}")

    @property
    def entity_type(self) -> str:
        return self.event_type.split('.', 1)[0]

    def to_dict(self) -> Dict:
        return {
            'event_type': self.event_type,
            'entity_id': self.entity_id,
            'payload': self.payload,
            'occurred_at': self.occurred_at.isoformat(),
        }


class EventSink(ABC):
    """Outbound collaborator responsible for fan-out of lifecycle events"""

    @abstractmethod
    def publish(self, event: LifecycleEvent) -> None:
        pass


class NullEventSink(EventSink):
    """Drops every event"""

    def publish(self, event: LifecycleEvent) -> None:
        return None


class RecordingEventSink(EventSink):
    """
    Keeps published events in memory and fans them out to in-process subscribers.

    Subscriber errors are logged and do not stop delivery to the others.
    """

    def __init__(self):
        self.events: List[LifecycleEvent] = []
        self._subscribers: Dict[str, List[Callable[[LifecycleEvent], None]]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: Callable[[LifecycleEvent], None]) -> None:
        """Register a callback for one event type, or '*' for all of them"""
        self._subscribers[event_type].append(callback)

    def publish(self, event: LifecycleEvent) -> None:
        self.events.append(event)
        for callback in self._subscribers.get(event.event_type, []) + self._subscribers.get('*', []):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Subscriber {callback!r} failed for {event.event_type}: {e}")

    def of_type(self, event_type: str) -> List[LifecycleEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class EventLogSink(EventSink):
    """Persists each event to the events audit table"""

    def publish(self, event: LifecycleEvent) -> None:
        from mms import db
        from mms.data.core.event_info.event import Event
        from mms.business.core.narrator import LifecycleNarrator

        payload = event.payload or {}
        try:
            Event.add_event(
                event_type=event.event_type,
                description=LifecycleNarrator.describe_event(event),
                user_id=payload.get('updated_by_id') or payload.get('created_by_id'),
                equipment_id=payload.get('equipment_id') if event.entity_type != 'equipment' else event.entity_id,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                payload=payload
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


class EventPublisher:
    """
    Engine-side wrapper around a sink.

    Publishing never raises: sink failures are logged and dropped
    (at-most-once delivery).
    """

    def __init__(self, sink: Optional[EventSink] = None):
        self.sink = sink if sink is not None else NullEventSink()

    def emit(self, event_type: str, entity=None, entity_id: Optional[int] = None) -> None:
        """
        Publish an event for an entity.

        Args:
            event_type: One of EVENT_TYPES
            entity: Model instance; its to_dict() becomes the payload
            entity_id: Used alone for deletions
        """
        if entity is not None:
            entity_id = entity.id
            payload = entity.to_dict()
        else:
            payload = {'id': entity_id}

        try:
            self.sink.publish(LifecycleEvent(event_type=event_type, entity_id=entity_id, payload=payload))
        except Exception as e:
            logger.error(f"Event sink failed to publish {event_type} for {entity_id}: {e}")
