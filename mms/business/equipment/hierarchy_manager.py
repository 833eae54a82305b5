"""
Equipment Hierarchy Manager
Owns the equipment tree: registration, re-parenting and soft deletion.

Children are never stored. Every structural write touches the affected
parents so their version counters move, which makes concurrent structural
writes on the same parent conflict and retry instead of interleaving.
"""

from datetime import datetime
from typing import Dict, List, Optional
from mms import db
from mms.data.core.equipment_info.equipment import Equipment
from mms.data.core.sequences import EquipmentCodeManager
from mms.business.core.errors import HasActiveChildren, HierarchyViolation, NotFound, ValidationError
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.versioning import commit_with_version_retry
from mms.business.equipment import health_score
from mms.logger import get_logger

logger = get_logger("mms.business.equipment.hierarchy")

MIN_LEVEL = 1
MAX_LEVEL = 5

REQUIRED_FIELDS = ('name', 'type', 'level', 'location')

CREATE_FIELDS = {
    'code', 'name', 'type', 'level', 'parent_id', 'criticality', 'location', 'status',
    'description', 'manufacturer', 'model', 'serial_number', 'commission_date',
    'running_hours', 'last_maintenance_hours', 'next_maintenance_hours', 'maintenance_cost',
    'uptime_percentage', 'specifications', 'mechanical_owner_id', 'electrical_owner_id',
    'operations_owner_id',
}


def validate_equipment_fields(data: Dict, partial: bool = False) -> None:
    """
    Validate enum and shape constraints of equipment fields.

    Args:
        data: Field values
        partial: When True, required fields may be absent

    Raises:
        ValidationError: On the first invalid field
    """
    if not partial:
        missing = [name for name in REQUIRED_FIELDS if data.get(name) in (None, '')]
        if missing:
            raise ValidationError(f"Missing required equipment field(s): {', '.join(missing)}")

    if 'type' in data and data['type'] not in Equipment.TYPES:
        raise ValidationError(f"Invalid equipment type: {data['type']}")
    if 'criticality' in data and data['criticality'] not in Equipment.CRITICALITIES:
        raise ValidationError(f"Invalid criticality: {data['criticality']}")
    if 'status' in data and data['status'] not in Equipment.STATUSES:
        raise ValidationError(f"Invalid equipment status: {data['status']}")
    if 'level' in data:
        level = data['level']
        if not isinstance(level, int) or isinstance(level, bool) or not MIN_LEVEL <= level <= MAX_LEVEL:
            raise ValidationError(f"Equipment level must be an integer between {MIN_LEVEL} and {MAX_LEVEL}")
    for name in ('running_hours', 'last_maintenance_hours', 'next_maintenance_hours', 'maintenance_cost'):
        if data.get(name) is not None and data[name] < 0:
            raise ValidationError(f"{name} cannot be negative")
    if data.get('uptime_percentage') is not None and not 0 <= data['uptime_percentage'] <= 100:
        raise ValidationError("uptime_percentage must be between 0 and 100")
    specifications = data.get('specifications')
    if specifications:
        if not isinstance(specifications, dict):
            raise ValidationError("specifications must be a mapping")
        unknown = set(specifications) - set(Equipment.SPECIFICATION_KEYS)
        if unknown:
            raise ValidationError(f"Unknown specification key(s): {', '.join(sorted(unknown))}")
        if any(not isinstance(value, str) for value in specifications.values()):
            raise ValidationError("specification values must be strings")


class EquipmentHierarchyManager:
    """
    Manager for the equipment tree.

    Enforces:
    - parent.level == level - 1 whenever a parent is set
    - level 1 equipment has no parent
    - no self-parenting and no cycles
    - deleted equipment cannot be a parent
    - deletion only when no active children remain
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)

    # Lookups

    @staticmethod
    def get_equipment(equipment_id: int, include_deleted: bool = False) -> Equipment:
        equipment = db.session.get(Equipment, equipment_id)
        if equipment is None or (equipment.is_deleted and not include_deleted):
            raise NotFound('Equipment', equipment_id)
        return equipment

    def children(self, equipment_id: int) -> List[Equipment]:
        """Active children of an equipment, queried fresh"""
        return self.get_equipment(equipment_id, include_deleted=True).children

    # Validation

    def validate_parent(self, level: int, parent_id: Optional[int], equipment_id: Optional[int] = None) -> Optional[Equipment]:
        """
        Check that `parent_id` is an acceptable parent for equipment at `level`.

        Args:
            level: Level of the child
            parent_id: Proposed parent (None for a root)
            equipment_id: The child itself, when it already exists

        Raises:
            HierarchyViolation: On level mismatch, self-parenting, cycles or a deleted parent

        Returns:
            The parent Equipment, or None
        """
        if parent_id is None:
            return None

        if level == MIN_LEVEL:
            raise HierarchyViolation("Level 1 equipment cannot have a parent")

        if equipment_id is not None and parent_id == equipment_id:
            raise HierarchyViolation("Equipment cannot be its own parent")

        parent = db.session.get(Equipment, parent_id)
        if parent is None:
            raise HierarchyViolation(f"Parent equipment {parent_id} not found")
        if parent.is_deleted:
            raise HierarchyViolation(f"Parent equipment {parent.code} is deleted")
        if parent.level != level - 1:
            raise HierarchyViolation(
                f"Parent {parent.code} is level {parent.level}; level {level} equipment needs a level {level - 1} parent"
            )

        if equipment_id is not None:
            self.validate_no_circular_reference(equipment_id, parent_id)

        return parent

    def validate_no_circular_reference(self, equipment_id: int, parent_id: int) -> bool:
        """
        Validate that `parent_id` is not a descendant of `equipment_id`.

        Raises:
            HierarchyViolation: If a circular reference would be created
        """
        visited = set()
        current_id = parent_id
        while current_id is not None and current_id not in visited:
            if current_id == equipment_id:
                raise HierarchyViolation(
                    f"Cannot link equipment {equipment_id} to parent {parent_id}: parent is a descendant"
                )
            visited.add(current_id)
            current = db.session.get(Equipment, current_id)
            current_id = current.parent_id if current else None
        return True

    @staticmethod
    def _touch(equipment: Optional[Equipment], user_id: Optional[int], now: datetime) -> None:
        # Dirtying the row makes the flush bump and check its version
        if equipment is None:
            return
        equipment.updated_at = now
        if user_id:
            equipment.updated_by_id = user_id

    # Operations

    def create(self, data: Dict, created_by_id: Optional[int] = None) -> Equipment:
        """
        Register new equipment.

        Args:
            data: Equipment fields; `code` is generated from the type when omitted
            created_by_id: Audit user

        Raises:
            ValidationError: Missing/invalid fields or duplicate code
            HierarchyViolation: Parent missing, deleted or at the wrong level

        Returns:
            The persisted Equipment
        """
        unknown = set(data) - CREATE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown equipment field(s): {', '.join(sorted(unknown))}")
        validate_equipment_fields(data)

        def apply():
            now = datetime.utcnow()
            parent = self.validate_parent(data['level'], data.get('parent_id'))

            code = data.get('code')
            if code:
                code = code.strip().upper()
                if Equipment.query.filter_by(code=code).first() is not None:
                    raise ValidationError(f"Equipment code {code} already exists")
            else:
                code = EquipmentCodeManager.next_code_for_type(data['type'])

            equipment = Equipment.from_dict(dict(data, code=code), user_id=created_by_id)
            db.session.add(equipment)
            self._touch(parent, created_by_id, now)
            db.session.flush()
            # Column defaults are only populated by the flush
            equipment.health_score = health_score.score(equipment, now=now)
            return equipment

        equipment = commit_with_version_retry(apply, "equipment create")
        logger.info(f"Created equipment {equipment.code} (level {equipment.level}, parent {equipment.parent_id})")

        self.events.emit('equipment.created', equipment)
        if equipment.parent_id:
            self.events.emit('equipment.updated', equipment.parent)
        return equipment

    def set_parent(self, equipment_id: int, new_parent_id: Optional[int], updated_by_id: Optional[int] = None) -> Equipment:
        """
        Move equipment under a new parent (or make it a root with None).

        Re-validates on every retry after a version conflict.

        Raises:
            NotFound: Equipment missing or deleted
            HierarchyViolation: Invalid new parent
            ConcurrentModification: Retries exhausted

        Returns:
            The updated Equipment
        """
        old_parent_ids = []

        def apply():
            equipment = self.get_equipment(equipment_id)
            old_parent_ids[:] = [equipment.parent_id]
            if equipment.parent_id == new_parent_id:
                return equipment
            self.stage_parent_change(equipment, new_parent_id, equipment.level, updated_by_id)
            return equipment

        equipment = commit_with_version_retry(apply, f"re-parent of equipment {equipment_id}")
        old_parent_id = old_parent_ids[0] if old_parent_ids else None
        if old_parent_id == new_parent_id:
            return equipment

        logger.info(f"Moved equipment {equipment.code}: parent {old_parent_id} -> {new_parent_id}")

        self.events.emit('equipment.updated', equipment)
        self.emit_parent_change(old_parent_id, new_parent_id)
        return equipment

    def stage_parent_change(self, equipment: Equipment, new_parent_id: Optional[int], level: int,
                            updated_by_id: Optional[int] = None) -> Optional[int]:
        """
        Validate and stage a move inside the caller's transaction.

        The equipment and both parents are touched so their versions move.

        Args:
            equipment: Equipment being moved
            new_parent_id: Target parent (None for a root)
            level: Level the equipment will have after the move
            updated_by_id: Audit user

        Raises:
            HierarchyViolation: Invalid new parent for that level

        Returns:
            The previous parent id
        """
        now = datetime.utcnow()
        new_parent = self.validate_parent(level, new_parent_id, equipment_id=equipment.id)
        old_parent_id = equipment.parent_id
        old_parent = db.session.get(Equipment, old_parent_id) if old_parent_id else None

        equipment.parent_id = new_parent_id
        self._touch(equipment, updated_by_id, now)
        self._touch(old_parent, updated_by_id, now)
        self._touch(new_parent, updated_by_id, now)
        return old_parent_id

    def emit_parent_change(self, old_parent_id: Optional[int], new_parent_id: Optional[int]) -> None:
        for parent_id in (old_parent_id, new_parent_id):
            if parent_id is not None:
                self.events.emit('equipment.updated', db.session.get(Equipment, parent_id))

    def delete(self, equipment_id: int, deleted_by_id: Optional[int] = None) -> Equipment:
        """
        Soft-delete equipment.

        Raises:
            NotFound: Equipment missing or already deleted
            HasActiveChildren: Non-deleted equipment still references it as parent

        Returns:
            The soft-deleted Equipment
        """
        def apply():
            now = datetime.utcnow()
            equipment = self.get_equipment(equipment_id)
            active_children = equipment.children
            if active_children:
                raise HasActiveChildren(equipment.code, [child.code for child in active_children])

            equipment.is_deleted = True
            equipment.deleted_at = now
            self._touch(equipment, deleted_by_id, now)
            self._touch(equipment.parent, deleted_by_id, now)
            return equipment

        equipment = commit_with_version_retry(apply, f"delete of equipment {equipment_id}")
        logger.info(f"Deleted equipment {equipment.code}")

        self.events.emit('equipment.deleted', entity_id=equipment.id)
        if equipment.parent_id:
            self.events.emit('equipment.updated', equipment.parent)
        return equipment

    # Read-only traversals

    def parent_chain(self, equipment_id: int) -> List[Equipment]:
        """
        Ancestors ordered from the immediate parent up to the root.
        """
        chain = []
        visited = set()
        current = self.get_equipment(equipment_id, include_deleted=True)

        while current is not None and current.parent_id and current.parent_id not in visited:
            visited.add(current.parent_id)
            current = db.session.get(Equipment, current.parent_id)
            if current is not None:
                chain.append(current)

        return chain

    def full_path(self, equipment_id: int, separator: str = ' > ') -> str:
        """Names from the root down to the equipment, e.g. 'Plant A > Unit 1 > Pump 3'"""
        equipment = self.get_equipment(equipment_id, include_deleted=True)
        names = [ancestor.name for ancestor in reversed(self.parent_chain(equipment_id))]
        names.append(equipment.name)
        return separator.join(names)

    def hierarchy_tree(self, root_id: Optional[int] = None) -> List[Dict]:
        """
        Nested dictionaries of the active tree.

        Args:
            root_id: Start below this equipment; None starts at every root

        Returns:
            List of {'id', 'code', 'name', 'level', 'type', 'health_score', 'children': [...]}
        """
        rows = Equipment.query.filter(Equipment.is_deleted.is_(False)).order_by(Equipment.code).all()
        by_parent = {}
        for row in rows:
            by_parent.setdefault(row.parent_id, []).append(row)

        def build(node):
            return {
                'id': node.id,
                'code': node.code,
                'name': node.name,
                'level': node.level,
                'type': node.type,
                'health_score': node.health_score,
                'children': [build(child) for child in by_parent.get(node.id, [])],
            }

        if root_id is not None:
            return [build(self.get_equipment(root_id))]
        known_ids = {row.id for row in rows}
        roots = [row for row in rows if row.parent_id is None or row.parent_id not in known_ids]
        return [build(root) for root in roots]

    def __repr__(self):
        return '<EquipmentHierarchyManager>'
