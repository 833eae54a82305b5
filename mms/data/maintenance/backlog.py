from mms import db
from mms.data.core.user_created_base import UserCreatedBase


class Backlog(UserCreatedBase):
    """An identified maintenance issue waiting to be scheduled as work."""
    __tablename__ = 'backlogs'

    CATEGORIES = (
        'Mechanical', 'Electrical', 'Safety', 'Environmental',
        'Operational', 'Instrumentation', 'Preventive', 'Inspection Finding',
    )
    PRIORITIES = ('P1', 'P2', 'P3', 'P4')
    SOURCES = ('Manual', 'Inspection Finding')

    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey('equipment.id'), nullable=False, index=True)
    issue = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(40), nullable=False)
    priority = db.Column(db.String(2), nullable=False, default='P3')
    status = db.Column(db.String(20), nullable=False, default='Open', index=True)
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    due_date = db.Column(db.DateTime, nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    estimated_cost = db.Column(db.Float, nullable=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    work_order_id = db.Column(db.Integer, nullable=True, index=True)  # back-reference, see WorkOrder.backlog_id
    source = db.Column(db.String(40), nullable=False, default='Manual')
    auto_generated = db.Column(db.Boolean, nullable=False, default=False)
    source_reference_type = db.Column(db.String(40), nullable=True)
    source_reference_id = db.Column(db.Integer, nullable=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    equipment = db.relationship('Equipment')
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id])
    work_order = db.relationship(
        'WorkOrder',
        primaryjoin='foreign(Backlog.work_order_id) == WorkOrder.id',
        viewonly=True
    )

    @property
    def source_reference(self):
        if self.source_reference_type is None:
            return None
        return {'type': self.source_reference_type, 'id': self.source_reference_id}

    def __repr__(self):
        return f'<Backlog {self.code} {self.status}>'
