from mms import db
from datetime import datetime
from mms.data.core.user_created_base import UserCreatedBase


class Event(UserCreatedBase):
    """Persistent audit trail of lifecycle events."""
    __tablename__ = 'events'

    event_type = db.Column(db.String(100), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey('equipment.id'), nullable=True)
    entity_type = db.Column(db.String(40), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    user = db.relationship('User', foreign_keys=[user_id])

    def __repr__(self):
        return f'<Event {self.event_type}: {self.description}>'

    @classmethod
    def add_event(cls, event_type, description, user_id=None, equipment_id=None,
                  entity_type=None, entity_id=None, payload=None):
        """
        Create and stage a new event

        Args:
            event_type (str): Type of event, e.g. "workorder.created"
            description (str): Event description
            user_id (int, optional): User ID who triggered the event
            equipment_id (int, optional): Related equipment ID
            entity_type (str, optional): Kind of entity the event is about
            entity_id (int, optional): ID of that entity
            payload (dict, optional): Serialized entity

        Returns:
            int: The ID of the created event
        """
        event = cls(
            event_type=event_type,
            description=description,
            user_id=user_id,
            equipment_id=equipment_id,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload
        )

        db.session.add(event)
        db.session.flush()  # Get the ID without committing
        return event.id
