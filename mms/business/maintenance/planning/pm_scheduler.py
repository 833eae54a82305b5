"""
PM Scheduler
Due-date calculation, overdue derivation and completion history for
recurring preventive maintenance.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional
from mms import db
from mms.data.core.equipment_info.equipment import Equipment
from mms.data.maintenance.pm_schedule import PMChecklistItem, PMCompletionRecord, PMSchedule
from mms.data.core.sequences import PMScheduleCodeManager
from mms.business.core.batch_result import BatchResult
from mms.business.core.errors import NotFound, ValidationError
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.versioning import commit_with_version_retry
from mms.business.equipment.equipment_context import EquipmentContext
from mms.business.equipment.hierarchy_manager import EquipmentHierarchyManager
from mms.business.maintenance.planning.frequency_behaviors import select_frequency_behavior
from mms.logger import get_logger

logger = get_logger("mms.business.maintenance.planning.pm")

SCHEDULED = 'Scheduled'
IN_PROGRESS = 'InProgress'
COMPLETED = 'Completed'
OVERDUE = 'Overdue'

DEFAULT_CHECKLISTS = {
    'Daily': [
        'Visual inspection for leaks or damage',
        'Check operating parameters',
        'Listen for unusual noises',
    ],
    'Weekly': [
        'Clean equipment surfaces',
        'Check fluid levels',
        'Test safety devices',
        'Record operating hours',
    ],
    'Monthly': [
        'Lubrication of moving parts',
        'Tighten connections',
        'Check belt tension',
        'Calibrate instruments',
        'Test emergency stops',
    ],
}

DEFAULT_COSTS = {
    'Daily': 500.0,
    'Weekly': 1000.0,
    'Monthly': 2500.0,
    'Quarterly': 5000.0,
    'Semi-Annually': 7500.0,
    'Annually': 10000.0,
}
FALLBACK_COST = 1000.0
DEFAULT_DURATION_HOURS = 2.0

UPDATABLE_FIELDS = {
    'title', 'description', 'frequency', 'last_performed', 'next_due', 'assigned_to_id',
    'estimated_duration', 'estimated_cost', 'notify_days_before', 'is_active',
}


def calculate_next_due(frequency: str, last_performed: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """
    Next due date: last performance (or now, if never performed) plus the
    calendar-aware frequency offset.

    Raises:
        ValidationError: Unknown frequency
    """
    behavior = select_frequency_behavior(frequency)
    if behavior is None:
        raise ValidationError(f"Invalid PM frequency: {frequency}")
    if now is None:
        now = datetime.utcnow()
    return behavior.advance(last_performed or now)


def is_overdue(schedule: PMSchedule, now: Optional[datetime] = None) -> bool:
    """Derived from dates, whatever the stored status says"""
    if now is None:
        now = datetime.utcnow()
    return schedule.next_due is not None and schedule.next_due < now and schedule.status != COMPLETED


def derive_status(schedule: PMSchedule, now: Optional[datetime] = None) -> str:
    """Status to store after a save: Overdue when overdue, otherwise unchanged"""
    if is_overdue(schedule, now):
        return OVERDUE
    return schedule.status


class PMScheduler:
    """
    Owns PMSchedule writes so the date-derived status is recomputed on
    every save instead of in a persistence hook.
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)

    @staticmethod
    def get_schedule(schedule_id: int) -> PMSchedule:
        schedule = db.session.get(PMSchedule, schedule_id)
        if schedule is None or schedule.is_deleted:
            raise NotFound('PMSchedule', schedule_id)
        return schedule

    def calculate_next_due(self, schedule: PMSchedule, now: Optional[datetime] = None) -> datetime:
        """Recalculate and set schedule.next_due (caller commits)"""
        schedule.next_due = calculate_next_due(schedule.frequency, schedule.last_performed, now)
        return schedule.next_due

    def create_schedule(
        self,
        equipment_id: int,
        title: str,
        frequency: str,
        checklist: Optional[List[str]] = None,
        last_performed: Optional[datetime] = None,
        next_due: Optional[datetime] = None,
        assigned_to_id: Optional[int] = None,
        estimated_duration: Optional[float] = None,
        estimated_cost: Optional[float] = None,
        notify_days_before: int = 7,
        description: Optional[str] = None,
        created_by_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> PMSchedule:
        """
        Create a schedule. Without an explicit next_due it is calculated
        from last_performed (or now).

        Raises:
            ValidationError: Missing title or bad frequency
            NotFound: Equipment missing or deleted
        """
        if not title:
            raise ValidationError("PM schedule title is required")
        if frequency not in PMSchedule.FREQUENCIES:
            raise ValidationError(f"Invalid PM frequency: {frequency}")
        if notify_days_before is None or notify_days_before < 0:
            raise ValidationError("notify_days_before cannot be negative")
        EquipmentHierarchyManager.get_equipment(equipment_id)

        try:
            schedule = self._build_schedule(
                equipment_id=equipment_id, title=title, frequency=frequency,
                checklist=checklist or [], last_performed=last_performed, next_due=next_due,
                assigned_to_id=assigned_to_id, estimated_duration=estimated_duration,
                estimated_cost=estimated_cost, notify_days_before=notify_days_before,
                description=description, created_by_id=created_by_id, now=now
            )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error creating PM schedule for equipment {equipment_id}: {e}")
            raise

        cadence = select_frequency_behavior(schedule.frequency).describe()
        logger.info(f"Created PM schedule {schedule.code} ({cadence}, next due {schedule.next_due})")
        self.events.emit('pm.created', schedule)
        return schedule

    def _build_schedule(self, equipment_id, title, frequency, checklist, last_performed, next_due,
                        assigned_to_id, estimated_duration, estimated_cost, notify_days_before,
                        description, created_by_id, now) -> PMSchedule:
        schedule = PMSchedule(
            code=PMScheduleCodeManager.next_code(),
            equipment_id=equipment_id,
            title=title,
            description=description,
            frequency=frequency,
            last_performed=last_performed,
            status=SCHEDULED,
            assigned_to_id=assigned_to_id,
            estimated_duration=estimated_duration,
            estimated_cost=estimated_cost,
            notify_days_before=notify_days_before,
            created_by_id=created_by_id,
            updated_by_id=created_by_id
        )
        schedule.next_due = next_due or calculate_next_due(frequency, last_performed, now)
        for index, item in enumerate(checklist):
            schedule.checklist.append(PMChecklistItem(item=item, completed=False, sort_order=index))
        schedule.status = derive_status(schedule, now)
        db.session.add(schedule)
        db.session.flush()
        return schedule

    def update_schedule(self, schedule_id: int, changes: Dict, updated_by_id: Optional[int] = None,
                        now: Optional[datetime] = None) -> PMSchedule:
        """
        Edit a schedule; next_due is recalculated when the frequency or the
        last performance date changes without an explicit next_due.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field(s) cannot be updated: {', '.join(sorted(unknown))}")
        if 'frequency' in changes and changes['frequency'] not in PMSchedule.FREQUENCIES:
            raise ValidationError(f"Invalid PM frequency: {changes['frequency']}")

        schedule = self.get_schedule(schedule_id)
        for key, value in changes.items():
            setattr(schedule, key, value)
        if ('frequency' in changes or 'last_performed' in changes) and 'next_due' not in changes:
            self.calculate_next_due(schedule, now)
        if schedule.status == OVERDUE and not is_overdue(schedule, now):
            schedule.status = SCHEDULED
        schedule.status = derive_status(schedule, now)
        schedule.updated_by_id = updated_by_id or schedule.updated_by_id
        db.session.commit()

        self.events.emit('pm.updated', schedule)
        return schedule

    def start(self, schedule_id: int, updated_by_id: Optional[int] = None, now: Optional[datetime] = None) -> PMSchedule:
        """Mark work on the current occurrence as started; a past-due occurrence stays Overdue"""
        schedule = self.get_schedule(schedule_id)
        schedule.status = IN_PROGRESS
        schedule.status = derive_status(schedule, now)
        schedule.updated_by_id = updated_by_id or schedule.updated_by_id
        db.session.commit()

        self.events.emit('pm.updated', schedule)
        return schedule

    def complete(
        self,
        schedule_id: int,
        completed_by_id: Optional[int] = None,
        actual_cost: Optional[float] = None,
        findings: Optional[str] = None,
        next_actions: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PMSchedule:
        """
        Record a performed occurrence.

        Appends to the completion history, moves last_performed to now,
        recalculates next_due and accumulates the cost onto the equipment.

        Args:
            schedule_id: PM schedule ID
            completed_by_id: Performer
            actual_cost: Defaults to the schedule's estimated cost
            findings: Free text report
            next_actions: Free text follow-ups
            now: Reference time

        Returns:
            The updated PMSchedule
        """
        if now is None:
            now = datetime.utcnow()
        if actual_cost is not None and actual_cost < 0:
            raise ValidationError("actual_cost cannot be negative")
        self.get_schedule(schedule_id)

        def apply():
            schedule = self.get_schedule(schedule_id)
            cost = actual_cost if actual_cost is not None else (schedule.estimated_cost or 0.0)

            schedule.completion_history.append(PMCompletionRecord(
                completed_date=now,
                completed_by_id=completed_by_id,
                actual_cost=cost,
                findings=findings,
                next_actions=next_actions
            ))
            schedule.last_performed = now
            schedule.actual_cost = cost
            schedule.status = SCHEDULED
            self.calculate_next_due(schedule, now)
            schedule.status = derive_status(schedule, now)
            for item in schedule.checklist:
                item.completed = False
            schedule.updated_by_id = completed_by_id or schedule.updated_by_id

            EquipmentContext.record_maintenance(schedule.equipment, now, cost=cost)
            return schedule

        schedule = commit_with_version_retry(apply, f"completion of PM schedule {schedule_id}")
        logger.info(f"PM schedule {schedule.code} completed, next due {schedule.next_due}")

        self.events.emit('pm.completed', schedule)
        self.events.emit('equipment.updated', schedule.equipment)
        return schedule

    def refresh_overdue(self, now: Optional[datetime] = None) -> BatchResult:
        """
        Background pass: store Overdue on every active schedule whose due
        date has passed. Each schedule commits on its own.
        """
        if now is None:
            now = datetime.utcnow()

        result = BatchResult(operation='pm.refresh_overdue')
        candidate_ids = [
            row.id for row in PMSchedule.query.filter(
                PMSchedule.is_active.is_(True),
                PMSchedule.is_deleted.is_(False),
                PMSchedule.status.notin_([OVERDUE, COMPLETED]),
                PMSchedule.next_due < now
            ).all()
        ]

        for schedule_id in candidate_ids:
            try:
                schedule = self.get_schedule(schedule_id)
                new_status = derive_status(schedule, now)
                if new_status == schedule.status:
                    result.record_skip(schedule_id)
                    continue
                schedule.status = new_status
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Overdue refresh failed for PM schedule {schedule_id}: {e}")
                result.record_failure(schedule_id, e)
                continue

            result.record_success(schedule)
            self.events.emit('pm.updated', schedule)

        if result.success_count or result.failure_count:
            logger.info(f"PM overdue refresh: {result.success_count} marked overdue, {result.failure_count} failed")
        return result

    @staticmethod
    def due_soon(now: Optional[datetime] = None) -> List[PMSchedule]:
        """Active schedules due within their own notification lead time"""
        if now is None:
            now = datetime.utcnow()
        candidates = PMSchedule.query.filter(
            PMSchedule.is_active.is_(True),
            PMSchedule.is_deleted.is_(False),
            PMSchedule.status != COMPLETED,
            PMSchedule.next_due >= now
        ).order_by(PMSchedule.next_due).all()
        return [s for s in candidates if s.next_due <= now + timedelta(days=s.notify_days_before)]

    def auto_generate(self, equipment_type: str, frequency: str, created_by_id: Optional[int] = None,
                      now: Optional[datetime] = None) -> BatchResult:
        """
        Create a default schedule for every active equipment of a type that
        has none at this frequency.
        """
        if equipment_type not in Equipment.TYPES:
            raise ValidationError(f"Invalid equipment type: {equipment_type}")
        if frequency not in PMSchedule.FREQUENCIES:
            raise ValidationError(f"Invalid PM frequency: {frequency}")

        result = BatchResult(operation='pm.auto_generate')
        equipment_rows = [
            (row.id, row.name) for row in Equipment.query.filter_by(
                type=equipment_type, status='Active', is_deleted=False
            ).order_by(Equipment.code).all()
        ]

        for equipment_id, equipment_name in equipment_rows:
            existing = PMSchedule.query.filter_by(
                equipment_id=equipment_id, frequency=frequency, is_deleted=False
            ).first()
            if existing is not None:
                result.record_skip(equipment_id)
                continue
            try:
                schedule = self._build_schedule(
                    equipment_id=equipment_id,
                    title=f"{frequency} Maintenance - {equipment_name}",
                    frequency=frequency,
                    checklist=DEFAULT_CHECKLISTS.get(frequency, []),
                    last_performed=None,
                    next_due=None,
                    assigned_to_id=None,
                    estimated_duration=DEFAULT_DURATION_HOURS,
                    estimated_cost=DEFAULT_COSTS.get(frequency, FALLBACK_COST),
                    notify_days_before=7,
                    description=None,
                    created_by_id=created_by_id,
                    now=now
                )
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"PM auto-generation failed for equipment {equipment_id}: {e}")
                result.record_failure(equipment_id, e)
                continue

            result.record_success(schedule)
            self.events.emit('pm.created', schedule)

        logger.info(f"PM auto-generation ({equipment_type}, {frequency}): {result.success_count} created")
        return result
