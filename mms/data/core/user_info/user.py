from mms import db
from datetime import datetime
from mms.business.core.data_insertion_mixin import DataInsertionMixin


class User(DataInsertionMixin, db.Model):
    """
    Technicians, planners and the system account.

    Authentication lives outside the engine; users are only referenced as
    assignees, performers and audit authors.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    full_name = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(40), default='technician')
    is_active = db.Column(db.Boolean, default=True)
    is_system = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.username}>'
