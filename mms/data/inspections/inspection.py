from datetime import datetime
from mms import db
from mms.data.core.user_created_base import UserCreatedBase
from mms.business.core.data_insertion_mixin import DataInsertionMixin


class Inspection(UserCreatedBase):
    """
    One inspection of one piece of equipment.

    Journey state is kept in explicit child rows (safety acknowledgements,
    checkpoint results, findings) and resource-tracking columns.
    """
    __tablename__ = 'inspections'
    _serialized_collections = ('findings', 'safety_acknowledgements', 'checkpoint_results')

    PRIORITIES = ('Normal', 'High', 'Urgent')

    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey('equipment.id'), nullable=False, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey('inspection_templates.id'), nullable=True)
    inspection_type = db.Column(db.String(60), nullable=False, default='Routine')
    priority = db.Column(db.String(10), nullable=False, default='Normal')
    scheduled_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    status = db.Column(db.String(20), nullable=False, default='Scheduled', index=True)
    is_draft = db.Column(db.Boolean, nullable=False, default=True)
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    completed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    completed_date = db.Column(db.DateTime, nullable=True)
    estimated_duration = db.Column(db.Float, nullable=True)  # hours
    health_score_before = db.Column(db.Integer, nullable=True)
    health_score_after = db.Column(db.Integer, nullable=True)
    comments = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    # Resource tracking
    measurement_start = db.Column(db.DateTime, nullable=True)
    measurement_end = db.Column(db.DateTime, nullable=True)
    engagement_start = db.Column(db.DateTime, nullable=True)
    engagement_end = db.Column(db.DateTime, nullable=True)
    session_started_at = db.Column(db.DateTime, nullable=True)
    total_tries = db.Column(db.Integer, nullable=False, default=0)
    total_time_spent = db.Column(db.Float, nullable=False, default=0.0)  # hours

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    equipment = db.relationship('Equipment', foreign_keys=[equipment_id])
    template = db.relationship('InspectionTemplate')
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id])
    completed_by = db.relationship('User', foreign_keys=[completed_by_id])

    findings = db.relationship(
        'InspectionFinding', back_populates='inspection',
        cascade='all, delete-orphan', order_by='InspectionFinding.sort_order'
    )
    safety_acknowledgements = db.relationship(
        'SafetyAcknowledgement', back_populates='inspection',
        cascade='all, delete-orphan', order_by='SafetyAcknowledgement.check_index'
    )
    checkpoint_results = db.relationship(
        'CheckpointResult', back_populates='inspection',
        cascade='all, delete-orphan', order_by='CheckpointResult.checkpoint_key'
    )

    def __repr__(self):
        return f'<Inspection {self.code} {self.status}>'


class InspectionFinding(DataInsertionMixin, db.Model):
    __tablename__ = 'inspection_findings'

    STATUSES = ('passed', 'failed', 'observation')
    PRIORITIES = ('low', 'medium', 'high', 'critical')

    id = db.Column(db.Integer, primary_key=True)
    inspection_id = db.Column(db.Integer, db.ForeignKey('inspections.id'), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False)
    priority = db.Column(db.String(20), nullable=False, default='low')
    action = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    inspection = db.relationship('Inspection', back_populates='findings')


class SafetyAcknowledgement(DataInsertionMixin, db.Model):
    __tablename__ = 'inspection_safety_acknowledgements'

    id = db.Column(db.Integer, primary_key=True)
    inspection_id = db.Column(db.Integer, db.ForeignKey('inspections.id'), nullable=False, index=True)
    check_index = db.Column(db.Integer, nullable=False)
    acknowledged = db.Column(db.Boolean, nullable=False, default=False)
    acknowledged_at = db.Column(db.DateTime, nullable=True)

    inspection = db.relationship('Inspection', back_populates='safety_acknowledgements')

    __table_args__ = (
        db.UniqueConstraint('inspection_id', 'check_index', name='uq_inspection_safety_check'),
    )


class CheckpointResult(DataInsertionMixin, db.Model):
    __tablename__ = 'inspection_checkpoint_results'

    id = db.Column(db.Integer, primary_key=True)
    inspection_id = db.Column(db.Integer, db.ForeignKey('inspections.id'), nullable=False, index=True)
    checkpoint_key = db.Column(db.String(60), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    measured_value = db.Column(db.Float, nullable=True)
    within_range = db.Column(db.Boolean, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    recorded_at = db.Column(db.DateTime, nullable=True)

    inspection = db.relationship('Inspection', back_populates='checkpoint_results')

    __table_args__ = (
        db.UniqueConstraint('inspection_id', 'checkpoint_key', name='uq_inspection_checkpoint'),
    )
