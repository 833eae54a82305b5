"""
Equipment Context
Non-structural equipment writes: attribute edits, running hours and the
baseline health refresh.
"""

from datetime import datetime
from typing import Dict, Optional
from mms import db
from mms.data.core.equipment_info.equipment import Equipment
from mms.business.core.errors import HierarchyViolation, ValidationError
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.versioning import commit_with_version_retry
from mms.business.equipment import health_score
from mms.business.equipment.hierarchy_manager import EquipmentHierarchyManager, validate_equipment_fields
from mms.logger import get_logger

logger = get_logger("mms.business.equipment.context")

UPDATABLE_FIELDS = {
    'name', 'location', 'description', 'manufacturer', 'model', 'serial_number',
    'commission_date', 'criticality', 'status', 'level', 'next_maintenance_hours',
    'uptime_percentage', 'specifications', 'mechanical_owner_id',
    'electrical_owner_id', 'operations_owner_id', 'next_maintenance',
}


class EquipmentContext:
    """
    Business operations on a single piece of equipment that do not change
    the shape of the tree (see EquipmentHierarchyManager for those).
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)
        self.hierarchy = EquipmentHierarchyManager(publisher=self.events)

    def update(self, equipment_id: int, changes: Dict, updated_by_id: Optional[int] = None) -> Equipment:
        """
        Apply attribute changes.

        A `parent_id` key is delegated to the hierarchy manager. A level
        change is only accepted when it stays consistent with the parent and
        the equipment has no active children.

        Raises:
            ValidationError: Unknown or invalid fields
            HierarchyViolation: Level change that would break the tree
            NotFound: Equipment missing or deleted
        """
        changes = dict(changes)
        new_parent_requested = 'parent_id' in changes
        new_parent_id = changes.pop('parent_id', None)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field(s) cannot be updated: {', '.join(sorted(unknown))}")
        validate_equipment_fields(changes, partial=True)

        moved_from = []

        def apply():
            moved_from.clear()
            equipment = self.hierarchy.get_equipment(equipment_id)
            if 'level' in changes and changes['level'] != equipment.level:
                if equipment.children:
                    raise HierarchyViolation(f"Cannot change level of {equipment.code} while it has active children")
                if new_parent_requested and new_parent_id != equipment.parent_id:
                    # Level and parent must change together to stay valid
                    moved_from.append(self.hierarchy.stage_parent_change(
                        equipment, new_parent_id, changes['level'], updated_by_id
                    ))
                else:
                    self.hierarchy.validate_parent(changes['level'], equipment.parent_id, equipment_id=equipment.id)

            for key, value in changes.items():
                setattr(equipment, key, value)
            equipment.updated_by_id = updated_by_id or equipment.updated_by_id
            self._refresh_baseline(equipment)
            return equipment

        equipment = commit_with_version_retry(apply, f"update of equipment {equipment_id}")
        logger.info(f"Updated equipment {equipment.code}: {sorted(changes)}")

        if new_parent_requested and not moved_from and equipment.parent_id != new_parent_id:
            return self.hierarchy.set_parent(equipment_id, new_parent_id, updated_by_id=updated_by_id)

        self.events.emit('equipment.updated', equipment)
        if moved_from:
            self.hierarchy.emit_parent_change(moved_from[0], new_parent_id)
        return equipment

    def record_running_hours(self, equipment_id: int, running_hours: float, updated_by_id: Optional[int] = None) -> Equipment:
        """
        Record a new cumulative running-hours reading.

        Raises:
            ValidationError: If the reading is lower than the stored one
        """
        if running_hours is None or running_hours < 0:
            raise ValidationError("running_hours must be a non-negative number")

        def apply():
            equipment = self.hierarchy.get_equipment(equipment_id)
            if running_hours < (equipment.running_hours or 0.0):
                raise ValidationError(
                    f"Running hours for {equipment.code} cannot decrease ({equipment.running_hours} -> {running_hours})"
                )
            equipment.running_hours = running_hours
            if updated_by_id:
                equipment.updated_by_id = updated_by_id
            self._refresh_baseline(equipment)
            return equipment

        equipment = commit_with_version_retry(apply, f"running hours of equipment {equipment_id}")
        logger.info(f"Equipment {equipment.code} running hours now {equipment.running_hours}")
        self.events.emit('equipment.updated', equipment)
        return equipment

    def refresh_health_score(self, equipment_id: int, now: Optional[datetime] = None) -> Equipment:
        """
        Recompute the baseline score unless a recent inspection score is in force.
        """
        def apply():
            equipment = self.hierarchy.get_equipment(equipment_id)
            self._refresh_baseline(equipment, now=now)
            return equipment

        equipment = commit_with_version_retry(apply, f"health refresh of equipment {equipment_id}")
        self.events.emit('equipment.updated', equipment)
        return equipment

    @staticmethod
    def _refresh_baseline(equipment: Equipment, now: Optional[datetime] = None) -> None:
        if health_score.has_recent_inspection(equipment, now=now):
            return
        new_score = health_score.score(equipment, now=now)
        if new_score != equipment.health_score:
            logger.debug(f"Baseline health for {equipment.code}: {equipment.health_score} -> {new_score}")
            equipment.health_score = new_score

    @staticmethod
    def apply_inspection_score(equipment: Equipment, new_score: int, inspected_at: datetime) -> None:
        """Evidence-based override written by inspection completion (caller commits)"""
        equipment.health_score = health_score.clamp_score(new_score)
        equipment.last_inspected_at = inspected_at

    @staticmethod
    def record_maintenance(equipment: Equipment, performed_at: datetime, cost: Optional[float] = None,
                           reset_running_hours: bool = False) -> None:
        """
        Maintenance writeback shared by work order and PM completion (caller commits).

        Cost is accumulated, never overwritten.
        """
        equipment.last_maintenance = performed_at
        if cost:
            equipment.maintenance_cost = (equipment.maintenance_cost or 0.0) + cost
        if reset_running_hours:
            equipment.last_maintenance_hours = equipment.running_hours or 0.0
        db.session.add(equipment)
