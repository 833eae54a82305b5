from mms import db
from datetime import datetime
from sqlalchemy.orm import declared_attr
from mms.business.core.data_insertion_mixin import DataInsertionMixin


class UserCreatedBase(db.Model, DataInsertionMixin):
    """Abstract base class for all user-created entities with audit trail"""

    __abstract__ = True

    @declared_attr
    def __tablename__(cls):
        return cls.__name__.lower() + 's'

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    @declared_attr
    def created_by(cls):
        return db.relationship('User', foreign_keys=[cls.created_by_id])

    @declared_attr
    def updated_by(cls):
        return db.relationship('User', foreign_keys=[cls.updated_by_id])

    def get_columns(self):
        return {
            'id', 'created_at', 'created_by_id', 'updated_at', 'updated_by_id'
        }
