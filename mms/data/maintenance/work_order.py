from datetime import datetime
from mms import db
from mms.data.core.user_created_base import UserCreatedBase
from mms.business.core.data_insertion_mixin import DataInsertionMixin


class WorkOrder(UserCreatedBase):
    """A schedulable unit of maintenance work with cost, labor and material tracking."""
    __tablename__ = 'work_orders'
    _serialized_collections = ('materials', 'labor')

    PRIORITIES = ('P1', 'P2', 'P3', 'P4')
    TYPES = ('Corrective', 'Preventive', 'Emergency', 'Shutdown')
    WO_TYPES = ('Auto Generated', 'User Generated')

    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    backlog_id = db.Column(db.Integer, db.ForeignKey('backlogs.id'), nullable=True, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey('equipment.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='Planned', index=True)
    priority = db.Column(db.String(2), nullable=False, default='P3')
    type = db.Column(db.String(20), nullable=False, default='Corrective')
    wo_type = db.Column(db.String(20), nullable=False, default='User Generated')
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    scheduled_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    start_date = db.Column(db.DateTime, nullable=True)
    completion_date = db.Column(db.DateTime, nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    actual_hours = db.Column(db.Float, nullable=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    estimated_cost = db.Column(db.Float, nullable=True)
    actual_cost = db.Column(db.Float, nullable=True)
    safety_procedures = db.Column(db.JSON, nullable=True)  # ordered list of procedure texts

    # Set when spawned by the rule engine
    auto_generation_rule_id = db.Column(db.Integer, db.ForeignKey('auto_work_order_rules.id'), nullable=True)
    trigger_type = db.Column(db.String(30), nullable=True)
    trigger_threshold = db.Column(db.Float, nullable=True)
    trigger_current_value = db.Column(db.Float, nullable=True)
    trigger_description = db.Column(db.Text, nullable=True)

    # Completion report
    report_findings = db.Column(db.Text, nullable=True)
    report_recommendations = db.Column(db.Text, nullable=True)
    report_next_actions = db.Column(db.Text, nullable=True)
    report_completed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    equipment = db.relationship('Equipment')
    backlog = db.relationship('Backlog', foreign_keys=[backlog_id])
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id])
    auto_generation_rule = db.relationship('AutoWorkOrderRule')
    materials = db.relationship(
        'WorkOrderMaterial', back_populates='work_order',
        cascade='all, delete-orphan', order_by='WorkOrderMaterial.id'
    )
    labor = db.relationship(
        'WorkOrderLabor', back_populates='work_order',
        cascade='all, delete-orphan', order_by='WorkOrderLabor.id'
    )

    @property
    def trigger_condition(self):
        if self.trigger_type is None:
            return None
        return {
            'type': self.trigger_type,
            'threshold': self.trigger_threshold,
            'current_value': self.trigger_current_value,
            'description': self.trigger_description,
        }

    def to_dict(self, include_children=True, include_audit_fields=True):
        result = super().to_dict(include_children=include_children, include_audit_fields=include_audit_fields)
        result['trigger_condition'] = self.trigger_condition
        return result

    def __repr__(self):
        return f'<WorkOrder {self.code} {self.status}>'


class WorkOrderMaterial(DataInsertionMixin, db.Model):
    __tablename__ = 'work_order_materials'

    STATUSES = ('Available', 'Ordered', 'Received', 'Used')

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)
    item = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Float, nullable=False, default=1.0)
    unit_cost = db.Column(db.Float, nullable=False, default=0.0)
    total_cost = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(20), nullable=False, default='Available')

    work_order = db.relationship('WorkOrder', back_populates='materials')


class WorkOrderLabor(DataInsertionMixin, db.Model):
    __tablename__ = 'work_order_labor'

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)
    technician_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    technician_name = db.Column(db.String(120), nullable=True)
    hours = db.Column(db.Float, nullable=False, default=0.0)
    rate = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)

    work_order = db.relationship('WorkOrder', back_populates='labor')
