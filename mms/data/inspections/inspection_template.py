from mms import db
from mms.data.core.user_created_base import UserCreatedBase
from mms.business.core.data_insertion_mixin import DataInsertionMixin


class InspectionTemplate(UserCreatedBase):
    """
    Reusable inspection definition: safety checks to acknowledge before work
    starts and checkpoints to complete before the inspection can close.
    """
    __tablename__ = 'inspection_templates'
    _serialized_collections = ('checkpoints',)

    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    equipment_types = db.Column(db.JSON, nullable=True)  # empty means any type
    safety_checks = db.Column(db.JSON, nullable=True)  # ordered list of check texts
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    checkpoints = db.relationship(
        'TemplateCheckpoint',
        back_populates='template',
        cascade='all, delete-orphan',
        order_by='TemplateCheckpoint.sort_order'
    )

    @property
    def mandatory_checkpoint_keys(self):
        return {checkpoint.key for checkpoint in self.checkpoints if checkpoint.mandatory}

    def applies_to(self, equipment_type):
        return not self.equipment_types or equipment_type in self.equipment_types

    def __repr__(self):
        return f'<InspectionTemplate {self.name}>'


class TemplateCheckpoint(DataInsertionMixin, db.Model):
    __tablename__ = 'template_checkpoints'

    TYPES = ('observation', 'measurement', 'test')

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.Integer, db.ForeignKey('inspection_templates.id'), nullable=False, index=True)
    key = db.Column(db.String(60), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    checkpoint_type = db.Column(db.String(20), nullable=False, default='observation')
    mandatory = db.Column(db.Boolean, nullable=False, default=True)
    unit = db.Column(db.String(20), nullable=True)
    normal_min = db.Column(db.Float, nullable=True)
    normal_max = db.Column(db.Float, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    template = db.relationship('InspectionTemplate', back_populates='checkpoints')

    __table_args__ = (
        db.UniqueConstraint('template_id', 'key', name='uq_template_checkpoint_key'),
    )

    def is_within_normal_range(self, value):
        if value is None:
            return True
        if self.normal_min is not None and value < self.normal_min:
            return False
        if self.normal_max is not None and value > self.normal_max:
            return False
        return True
