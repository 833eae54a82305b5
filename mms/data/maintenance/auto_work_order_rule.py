from mms import db
from mms.data.core.user_created_base import UserCreatedBase
from mms.business.core.data_insertion_mixin import DataInsertionMixin


class AutoWorkOrderRule(UserCreatedBase):
    """
    A condition on one piece of equipment that spawns a work order when met.

    `is_armed` carries the last-fired state: a fired rule stays disarmed
    until its condition has been observed false again.
    """
    __tablename__ = 'auto_work_order_rules'
    _serialized_collections = ('template_materials',)

    TRIGGER_TYPES = ('running_hours', 'calendar_based', 'condition_based', 'inspection_finding')
    TRIGGER_UNITS = ('hours', 'days', 'weeks', 'months', 'threshold')

    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    equipment_id = db.Column(db.Integer, db.ForeignKey('equipment.id'), nullable=False, index=True)
    trigger_type = db.Column(db.String(30), nullable=False)
    trigger_value = db.Column(db.Float, nullable=False)
    trigger_unit = db.Column(db.String(20), nullable=False, default='hours')
    priority = db.Column(db.String(2), nullable=False, default='P2')
    last_triggered = db.Column(db.DateTime, nullable=True)
    next_trigger = db.Column(db.DateTime, nullable=True)
    is_armed = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Work order template
    template_title = db.Column(db.String(200), nullable=False)
    template_description = db.Column(db.Text, nullable=True)
    template_type = db.Column(db.String(20), nullable=False, default='Preventive')
    template_estimated_hours = db.Column(db.Float, nullable=True)

    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    equipment = db.relationship('Equipment')
    template_materials = db.relationship(
        'RuleTemplateMaterial', back_populates='rule',
        cascade='all, delete-orphan', order_by='RuleTemplateMaterial.id'
    )

    def __repr__(self):
        return f'<AutoWorkOrderRule {self.code} {self.trigger_type}>'


class RuleTemplateMaterial(DataInsertionMixin, db.Model):
    __tablename__ = 'rule_template_materials'

    id = db.Column(db.Integer, primary_key=True)
    rule_id = db.Column(db.Integer, db.ForeignKey('auto_work_order_rules.id'), nullable=False, index=True)
    item = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Float, nullable=False, default=1.0)
    unit_cost = db.Column(db.Float, nullable=False, default=0.0)

    rule = db.relationship('AutoWorkOrderRule', back_populates='template_materials')
