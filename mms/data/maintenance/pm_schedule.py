from datetime import datetime
from mms import db
from mms.data.core.user_created_base import UserCreatedBase
from mms.business.core.data_insertion_mixin import DataInsertionMixin


class PMSchedule(UserCreatedBase):
    """
    A recurring preventive maintenance obligation.

    The stored status is refreshed from the dates by the scheduler, it is
    never trusted on its own.
    """
    __tablename__ = 'pm_schedules'
    _serialized_collections = ('checklist', 'completion_history')

    FREQUENCIES = ('Daily', 'Weekly', 'Monthly', 'Quarterly', 'Semi-Annually', 'Annually')
    STATUSES = ('Scheduled', 'InProgress', 'Completed', 'Overdue')

    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey('equipment.id'), nullable=False, index=True)
    frequency = db.Column(db.String(20), nullable=False)
    last_performed = db.Column(db.DateTime, nullable=True)
    next_due = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='Scheduled', index=True)
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    estimated_duration = db.Column(db.Float, nullable=True)  # hours
    estimated_cost = db.Column(db.Float, nullable=True)
    actual_cost = db.Column(db.Float, nullable=True)
    notify_days_before = db.Column(db.Integer, nullable=False, default=7)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    equipment = db.relationship('Equipment')
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id])
    checklist = db.relationship(
        'PMChecklistItem', back_populates='schedule',
        cascade='all, delete-orphan', order_by='PMChecklistItem.sort_order'
    )
    completion_history = db.relationship(
        'PMCompletionRecord', back_populates='schedule',
        cascade='all, delete-orphan', order_by='PMCompletionRecord.completed_date'
    )

    def __repr__(self):
        return f'<PMSchedule {self.code} {self.frequency} due {self.next_due}>'


class PMChecklistItem(DataInsertionMixin, db.Model):
    __tablename__ = 'pm_checklist_items'

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey('pm_schedules.id'), nullable=False, index=True)
    item = db.Column(db.String(200), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    schedule = db.relationship('PMSchedule', back_populates='checklist')


class PMCompletionRecord(DataInsertionMixin, db.Model):
    """Append-only completion log entry"""
    __tablename__ = 'pm_completion_records'

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey('pm_schedules.id'), nullable=False, index=True)
    completed_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    actual_cost = db.Column(db.Float, nullable=True)
    findings = db.Column(db.Text, nullable=True)
    next_actions = db.Column(db.Text, nullable=True)

    schedule = db.relationship('PMSchedule', back_populates='completion_history')
