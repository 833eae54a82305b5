from mms import db
from mms.data.core.user_created_base import UserCreatedBase
from mms.logger import get_logger

logger = get_logger("mms.data.core.equipment")


class Equipment(UserCreatedBase):
    """
    A node of the plant equipment tree.

    Only the parent reference is stored. Children are always derived by
    query so there is no stored membership list that could drift.
    """
    __tablename__ = 'equipment'

    TYPES = ('plant', 'equipment', 'assembly', 'sub-assembly', 'component')
    CRITICALITIES = ('A', 'B', 'C')
    STATUSES = ('Active', 'Maintenance', 'Decommissioned')
    SPECIFICATION_KEYS = (
        'rated_power', 'voltage', 'capacity', 'pressure', 'temperature',
        'flow', 'speed', 'weight', 'dimensions', 'material',
    )

    code = db.Column(db.String(40), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    level = db.Column(db.Integer, nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey('equipment.id'), nullable=True, index=True)
    criticality = db.Column(db.String(1), nullable=False, default='C')
    location = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='Active')
    description = db.Column(db.Text, nullable=True)
    manufacturer = db.Column(db.String(120), nullable=True)
    model = db.Column(db.String(120), nullable=True)
    serial_number = db.Column(db.String(120), nullable=True)
    commission_date = db.Column(db.DateTime, nullable=True)

    # Runtime and health state
    running_hours = db.Column(db.Float, nullable=False, default=0.0)
    last_maintenance_hours = db.Column(db.Float, nullable=False, default=0.0)
    next_maintenance_hours = db.Column(db.Float, nullable=False, default=1000.0)
    health_score = db.Column(db.Integer, nullable=False, default=100)
    maintenance_cost = db.Column(db.Float, nullable=False, default=0.0)
    uptime_percentage = db.Column(db.Float, nullable=True)
    last_maintenance = db.Column(db.DateTime, nullable=True)
    next_maintenance = db.Column(db.DateTime, nullable=True)
    last_inspected_at = db.Column(db.DateTime, nullable=True)

    # Bounded key allowlist, see SPECIFICATION_KEYS
    specifications = db.Column(db.JSON, nullable=True)

    # Ownership
    mechanical_owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    electrical_owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    operations_owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    # Optimistic concurrency token
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    parent = db.relationship('Equipment', remote_side='Equipment.id', foreign_keys=[parent_id])

    @property
    def children(self):
        """Active children, recomputed on every access"""
        return (
            Equipment.query
            .filter(Equipment.parent_id == self.id, Equipment.is_deleted.is_(False))
            .order_by(Equipment.code)
            .all()
        )

    @property
    def child_ids(self):
        return [child.id for child in self.children]

    def to_dict(self, include_children=True, include_audit_fields=True):
        result = super().to_dict(include_children=False, include_audit_fields=include_audit_fields)
        if include_children and self.id is not None:
            result['children'] = self.child_ids
        return result

    def __repr__(self):
        return f'<Equipment {self.code} L{self.level}>'
