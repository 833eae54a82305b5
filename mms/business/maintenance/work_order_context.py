"""
Work Order Context
Lifecycle of a single work order: status transitions, cost lines,
completion, cancellation and soft deletion, including the writebacks to
the linked backlog and equipment.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional
from mms import db
from mms.data.maintenance.backlog import Backlog
from mms.data.maintenance.work_order import WorkOrder, WorkOrderLabor, WorkOrderMaterial
from mms.business.core.errors import InvalidTransition, NotFound, ValidationError
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.narrator import LifecycleNarrator
from mms.business.core.versioning import commit_with_version_retry
from mms.business.equipment.equipment_context import EquipmentContext
from mms.business.maintenance.backlog_manager import COMPLETED, IN_PROGRESS, OPEN, advance_status
from mms.business.maintenance.work_order_state_machine import WorkOrderStateMachine
from mms.logger import get_logger

logger = get_logger("mms.business.maintenance.work_order")

PRIORITY_WEIGHTS = {'P1': 4, 'P2': 3, 'P3': 2, 'P4': 1}
CRITICALITY_WEIGHTS = {'A': 3, 'B': 2, 'C': 1}

EDITABLE_FIELDS = {
    'title', 'description', 'priority', 'type', 'assigned_to_id', 'scheduled_date',
    'estimated_hours', 'actual_hours', 'estimated_cost', 'safety_procedures',
}


def calculate_actual_cost(work_order: WorkOrder) -> float:
    """Sum of material line totals and labor line totals"""
    materials = sum(material.total_cost or 0.0 for material in work_order.materials)
    labor = sum(line.total or 0.0 for line in work_order.labor)
    return materials + labor


def is_overdue(work_order: WorkOrder, now: Optional[datetime] = None) -> bool:
    if now is None:
        now = datetime.utcnow()
    return (
        work_order.scheduled_date is not None
        and work_order.scheduled_date < now
        and work_order.status not in WorkOrderStateMachine.TERMINAL_STATES
    )


def priority_score(work_order: WorkOrder, now: Optional[datetime] = None) -> float:
    """
    Ranking score: priority weight x equipment criticality weight, doubled
    when overdue and raised by half when due within a week.
    """
    if now is None:
        now = datetime.utcnow()
    criticality = work_order.equipment.criticality if work_order.equipment else 'C'
    score = PRIORITY_WEIGHTS.get(work_order.priority, 1) * CRITICALITY_WEIGHTS.get(criticality, 1)
    if is_overdue(work_order, now):
        score *= 2
    elif work_order.scheduled_date is not None and work_order.scheduled_date - now <= timedelta(days=7):
        score *= 1.5
    return score


class WorkOrderContext:
    """
    Business logic for work orders after creation.

    Status changes go through WorkOrderStateMachine. Completion computes
    actual cost, closes the linked backlog and writes maintenance state
    back onto the equipment in the same transaction.
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)

    @staticmethod
    def get_work_order(work_order_id: int) -> WorkOrder:
        work_order = db.session.get(WorkOrder, work_order_id)
        if work_order is None or work_order.is_deleted:
            raise NotFound('WorkOrder', work_order_id)
        return work_order

    @staticmethod
    def _require_open(work_order: WorkOrder) -> None:
        if work_order.status in WorkOrderStateMachine.TERMINAL_STATES:
            raise InvalidTransition(f"Work order {work_order.code} is {work_order.status}")

    def update(self, work_order_id: int, changes: Dict, updated_by_id: Optional[int] = None) -> WorkOrder:
        """Edit descriptive and planning fields of an open work order"""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field(s) cannot be updated: {', '.join(sorted(unknown))}")
        if 'priority' in changes and changes['priority'] not in WorkOrder.PRIORITIES:
            raise ValidationError(f"Invalid work order priority: {changes['priority']}")
        if 'type' in changes and changes['type'] not in WorkOrder.TYPES:
            raise ValidationError(f"Invalid work order type: {changes['type']}")

        work_order = self.get_work_order(work_order_id)
        self._require_open(work_order)
        for key, value in changes.items():
            setattr(work_order, key, value)
        work_order.updated_by_id = updated_by_id or work_order.updated_by_id
        db.session.commit()

        self.events.emit('workorder.updated', work_order)
        return work_order

    def add_material(self, work_order_id: int, item: str, quantity: float, unit_cost: float,
                     status: str = 'Available') -> WorkOrderMaterial:
        if not item:
            raise ValidationError("Material item is required")
        if quantity is None or quantity <= 0 or unit_cost is None or unit_cost < 0:
            raise ValidationError("Material quantity must be positive and unit cost non-negative")
        if status not in WorkOrderMaterial.STATUSES:
            raise ValidationError(f"Invalid material status: {status}")

        work_order = self.get_work_order(work_order_id)
        self._require_open(work_order)
        material = WorkOrderMaterial(
            item=item, quantity=quantity, unit_cost=unit_cost,
            total_cost=quantity * unit_cost, status=status
        )
        work_order.materials.append(material)
        db.session.commit()

        self.events.emit('workorder.updated', work_order)
        return material

    def add_labor(self, work_order_id: int, hours: float, rate: float, technician_id: Optional[int] = None,
                  technician_name: Optional[str] = None) -> WorkOrderLabor:
        if hours is None or hours <= 0 or rate is None or rate < 0:
            raise ValidationError("Labor hours must be positive and rate non-negative")

        work_order = self.get_work_order(work_order_id)
        self._require_open(work_order)
        line = WorkOrderLabor(
            technician_id=technician_id, technician_name=technician_name,
            hours=hours, rate=rate, total=hours * rate
        )
        work_order.labor.append(line)
        db.session.commit()

        self.events.emit('workorder.updated', work_order)
        return line

    def set_progress(self, work_order_id: int, progress: int, updated_by_id: Optional[int] = None) -> WorkOrder:
        if progress is None or not 0 <= progress <= 100:
            raise ValidationError("Progress must be between 0 and 100")
        work_order = self.get_work_order(work_order_id)
        self._require_open(work_order)
        work_order.progress = progress
        work_order.updated_by_id = updated_by_id or work_order.updated_by_id
        self._sync_backlog(work_order)
        db.session.commit()

        self.events.emit('workorder.updated', work_order)
        return work_order

    def transition(
        self,
        work_order_id: int,
        to_status: str,
        updated_by_id: Optional[int] = None,
        actual_hours: Optional[float] = None,
        report: Optional[Dict] = None,
        now: Optional[datetime] = None
    ) -> WorkOrder:
        """
        Move a work order to a new status.

        Args:
            work_order_id: Work order ID
            to_status: Target status
            updated_by_id: Audit user
            actual_hours: Recorded on completion
            report: Completion report {'findings', 'recommendations', 'next_actions'}
            now: Reference time

        Raises:
            InvalidTransition: If the state machine refuses the move
            NotFound: Work order missing or deleted

        Returns:
            The updated WorkOrder
        """
        if now is None:
            now = datetime.utcnow()

        current = self.get_work_order(work_order_id)
        WorkOrderStateMachine.validate_transition(current.status, to_status)
        from_status = current.status

        if to_status == WorkOrderStateMachine.CANCELLED:
            return self.cancel(work_order_id, updated_by_id=updated_by_id)

        def apply():
            work_order = self.get_work_order(work_order_id)
            work_order.status = to_status
            work_order.updated_by_id = updated_by_id or work_order.updated_by_id

            if to_status == WorkOrderStateMachine.IN_PROGRESS and work_order.start_date is None:
                work_order.start_date = now

            if to_status == WorkOrderStateMachine.COMPLETED:
                work_order.completion_date = now
                work_order.progress = 100
                if actual_hours is not None:
                    work_order.actual_hours = actual_hours
                work_order.actual_cost = calculate_actual_cost(work_order)
                if report:
                    work_order.report_findings = report.get('findings')
                    work_order.report_recommendations = report.get('recommendations')
                    work_order.report_next_actions = report.get('next_actions')
                    work_order.report_completed_by_id = report.get('completed_by_id') or updated_by_id
                EquipmentContext.record_maintenance(work_order.equipment, now, reset_running_hours=True)

            self._sync_backlog(work_order)
            return work_order

        work_order = commit_with_version_retry(apply, f"work order {work_order_id} -> {to_status}")
        logger.info(LifecycleNarrator.status_changed(work_order.code, from_status, to_status))

        self.events.emit('workorder.updated', work_order)
        if work_order.backlog_id:
            self.events.emit('backlog.updated', work_order.backlog)
        if to_status == WorkOrderStateMachine.COMPLETED:
            self.events.emit('equipment.updated', work_order.equipment)
        return work_order

    def start(self, work_order_id: int, updated_by_id: Optional[int] = None, now: Optional[datetime] = None) -> WorkOrder:
        return self.transition(work_order_id, WorkOrderStateMachine.IN_PROGRESS, updated_by_id=updated_by_id, now=now)

    def complete(self, work_order_id: int, completed_by_id: Optional[int] = None, actual_hours: Optional[float] = None,
                 report: Optional[Dict] = None, now: Optional[datetime] = None) -> WorkOrder:
        return self.transition(
            work_order_id, WorkOrderStateMachine.COMPLETED, updated_by_id=completed_by_id,
            actual_hours=actual_hours, report=report, now=now
        )

    def cancel(self, work_order_id: int, updated_by_id: Optional[int] = None) -> WorkOrder:
        """Cancel and return the linked backlog to the pool (status Open, unlinked)"""
        work_order = self.get_work_order(work_order_id)
        WorkOrderStateMachine.validate_transition(work_order.status, WorkOrderStateMachine.CANCELLED)

        work_order.status = WorkOrderStateMachine.CANCELLED
        work_order.updated_by_id = updated_by_id or work_order.updated_by_id
        backlog = self._release_backlog(work_order)
        db.session.commit()

        logger.info(f"Work order {work_order.code} cancelled")
        self.events.emit('workorder.updated', work_order)
        if backlog is not None:
            self.events.emit('backlog.updated', backlog)
        return work_order

    def delete(self, work_order_id: int, deleted_by_id: Optional[int] = None) -> WorkOrder:
        """Soft delete; an unfinished linked backlog goes back to Open with no work order"""
        work_order = self.get_work_order(work_order_id)
        work_order.is_deleted = True
        work_order.updated_by_id = deleted_by_id or work_order.updated_by_id
        backlog = self._release_backlog(work_order)
        db.session.commit()

        logger.info(f"Work order {work_order.code} deleted")
        self.events.emit('workorder.deleted', entity_id=work_order.id)
        if backlog is not None:
            self.events.emit('backlog.updated', backlog)
        return work_order

    @staticmethod
    def _sync_backlog(work_order: WorkOrder) -> None:
        # Forward-only: a held work order leaves its backlog where it was
        backlog = work_order.backlog
        if backlog is None or backlog.is_deleted:
            return
        if work_order.status == WorkOrderStateMachine.COMPLETED:
            advance_status(backlog, COMPLETED)
        elif work_order.status == WorkOrderStateMachine.IN_PROGRESS:
            advance_status(backlog, IN_PROGRESS)
        backlog.progress = work_order.progress

    @staticmethod
    def _release_backlog(work_order: WorkOrder) -> Optional[Backlog]:
        backlog = work_order.backlog
        if backlog is None or backlog.work_order_id != work_order.id:
            return None
        # Finished work stays finished and keeps its link
        if backlog.status == COMPLETED:
            return None
        backlog.work_order_id = None
        backlog.status = OPEN
        backlog.progress = 0
        return backlog
