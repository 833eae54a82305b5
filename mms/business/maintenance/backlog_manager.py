"""
Backlog Manager
Manual backlog entry, edits, bulk assignment and status progression.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional
from mms import db
from mms.data.maintenance.backlog import Backlog
from mms.data.core.sequences import BacklogCodeManager
from mms.business.core.batch_result import BatchResult
from mms.business.core.errors import NotFound, ValidationError
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.narrator import LifecycleNarrator
from mms.business.equipment.hierarchy_manager import EquipmentHierarchyManager
from mms.logger import get_logger

logger = get_logger("mms.business.maintenance.backlog")

OPEN = 'Open'
VALIDATED = 'Validated'
PLANNED = 'Planned'
IN_PROGRESS = 'InProgress'
COMPLETED = 'Completed'

# Progression order; sync from work orders only ever moves forward
STATUS_ORDER = (OPEN, VALIDATED, PLANNED, IN_PROGRESS, COMPLETED)

ELIGIBLE_FOR_WORK_ORDER = (OPEN, VALIDATED, PLANNED)

EDITABLE_FIELDS = {'issue', 'category', 'priority', 'assigned_to_id', 'due_date', 'estimated_hours', 'estimated_cost'}


def validate_backlog_fields(data: Dict) -> None:
    if 'category' in data and data['category'] not in Backlog.CATEGORIES:
        raise ValidationError(f"Invalid backlog category: {data['category']}")
    if 'priority' in data and data['priority'] not in Backlog.PRIORITIES:
        raise ValidationError(f"Invalid backlog priority: {data['priority']}")
    if 'status' in data and data['status'] not in STATUS_ORDER:
        raise ValidationError(f"Invalid backlog status: {data['status']}")
    for name in ('estimated_hours', 'estimated_cost'):
        if data.get(name) is not None and data[name] < 0:
            raise ValidationError(f"{name} cannot be negative")


def advance_status(backlog: Backlog, target: str) -> bool:
    """
    Move a backlog forward to `target`; never moves it backwards.

    Returns:
        True if the status changed
    """
    if STATUS_ORDER.index(target) > STATUS_ORDER.index(backlog.status):
        backlog.status = target
        return True
    return False


def is_eligible_for_work_order(backlog: Backlog) -> bool:
    return (
        backlog.status in ELIGIBLE_FOR_WORK_ORDER
        and backlog.work_order_id is None
        and not backlog.is_deleted
    )


class BacklogManager:
    """
    Operations on backlog items outside of the automatic generators.
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)

    @staticmethod
    def get_backlog(backlog_id: int) -> Backlog:
        backlog = db.session.get(Backlog, backlog_id)
        if backlog is None or backlog.is_deleted:
            raise NotFound('Backlog', backlog_id)
        return backlog

    def create_backlog(
        self,
        equipment_id: int,
        issue: str,
        category: str,
        priority: str = 'P3',
        assigned_to_id: Optional[int] = None,
        due_date: Optional[datetime] = None,
        estimated_hours: Optional[float] = None,
        estimated_cost: Optional[float] = None,
        created_by_id: Optional[int] = None
    ) -> Backlog:
        """
        Record a manually identified issue.

        Raises:
            ValidationError: Missing issue or bad enum
            NotFound: Equipment missing or deleted
        """
        if not issue or not issue.strip():
            raise ValidationError("Backlog issue is required")
        validate_backlog_fields({
            'category': category, 'priority': priority,
            'estimated_hours': estimated_hours, 'estimated_cost': estimated_cost,
        })
        EquipmentHierarchyManager.get_equipment(equipment_id)

        try:
            backlog = Backlog(
                code=BacklogCodeManager.next_code(),
                equipment_id=equipment_id,
                issue=issue.strip(),
                category=category,
                priority=priority,
                status=OPEN,
                assigned_to_id=assigned_to_id,
                due_date=due_date,
                estimated_hours=estimated_hours,
                estimated_cost=estimated_cost,
                source='Manual',
                auto_generated=False,
                created_by_id=created_by_id,
                updated_by_id=created_by_id
            )
            db.session.add(backlog)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error creating backlog for equipment {equipment_id}: {e}")
            raise

        logger.info(f"Created backlog {backlog.code} ({backlog.priority}, {backlog.category})")
        self.events.emit('backlog.created', backlog)
        return backlog

    def update_backlog(self, backlog_id: int, changes: Dict, updated_by_id: Optional[int] = None) -> Backlog:
        """Edit descriptive fields of a backlog item (status has its own paths)"""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field(s) cannot be updated: {', '.join(sorted(unknown))}")
        validate_backlog_fields(changes)

        backlog = self.get_backlog(backlog_id)
        for key, value in changes.items():
            setattr(backlog, key, value)
        backlog.updated_by_id = updated_by_id or backlog.updated_by_id
        db.session.commit()

        self.events.emit('backlog.updated', backlog)
        return backlog

    def validate(self, backlog_id: int, updated_by_id: Optional[int] = None) -> Backlog:
        """Confirm an Open backlog item as a real issue"""
        backlog = self.get_backlog(backlog_id)
        if backlog.status != OPEN:
            raise ValidationError(f"Backlog {backlog.code} is {backlog.status}, only Open items can be validated")
        backlog.status = VALIDATED
        backlog.updated_by_id = updated_by_id or backlog.updated_by_id
        db.session.commit()

        self.events.emit('backlog.updated', backlog)
        return backlog

    def admin_set_status(self, backlog_id: int, status: str, updated_by_id: Optional[int] = None) -> Backlog:
        """
        Explicit administrative status edit. The only path that may move a
        backlog backwards.
        """
        validate_backlog_fields({'status': status})
        backlog = self.get_backlog(backlog_id)
        previous = backlog.status
        backlog.status = status
        if status == OPEN:
            backlog.work_order_id = None
        backlog.updated_by_id = updated_by_id or backlog.updated_by_id
        db.session.commit()

        logger.warning(LifecycleNarrator.status_changed(backlog.code, previous, status, reason="admin override"))
        self.events.emit('backlog.updated', backlog)
        return backlog

    def bulk_assign(
        self,
        backlog_ids: Iterable[int],
        assigned_to_id: Optional[int] = None,
        priority: Optional[str] = None,
        due_date: Optional[datetime] = None,
        category: Optional[str] = None,
        updated_by_id: Optional[int] = None
    ) -> BatchResult:
        """
        Apply the same assignment to many backlog items.

        Every item is attempted and committed on its own; failures are
        collected in the result.

        Raises:
            ValidationError: If the requested values themselves are invalid
        """
        changes = {}
        if assigned_to_id is not None:
            changes['assigned_to_id'] = assigned_to_id
        if priority is not None:
            changes['priority'] = priority
        if due_date is not None:
            changes['due_date'] = due_date
        if category is not None:
            changes['category'] = category
        if not changes:
            raise ValidationError("Bulk assign needs at least one field to set")
        validate_backlog_fields(changes)

        result = BatchResult(operation='backlog.bulk_assign')
        for backlog_id in backlog_ids:
            try:
                backlog = self.get_backlog(backlog_id)
                for key, value in changes.items():
                    setattr(backlog, key, value)
                backlog.updated_by_id = updated_by_id or backlog.updated_by_id
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Bulk assign failed for backlog {backlog_id}: {e}")
                result.record_failure(backlog_id, e)
                continue

            result.record_success(backlog)
            self.events.emit('backlog.bulkUpdated', backlog)

        logger.info(f"Bulk assign: {result.success_count} updated, {result.failure_count} failed")
        return result
