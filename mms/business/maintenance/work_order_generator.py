"""
Backlog -> Work Order Generator
Promotes eligible backlog items into schedulable work orders, and builds
the work orders spawned by auto generation rules.
"""

from datetime import datetime
from typing import Iterable, List, Optional
from sqlalchemy import update
from mms import db
from mms.data.maintenance.backlog import Backlog
from mms.data.maintenance.work_order import WorkOrder, WorkOrderMaterial
from mms.data.core.sequences import WorkOrderCodeManager
from mms.business.core.batch_result import BatchResult
from mms.business.core.errors import NotFound
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.narrator import LifecycleNarrator
from mms.business.core.settings import engine_setting
from mms.business.maintenance.backlog_manager import (
    ELIGIBLE_FOR_WORK_ORDER, PLANNED, advance_status, is_eligible_for_work_order,
)
from mms.business.maintenance.work_order_state_machine import WorkOrderStateMachine
from mms.logger import get_logger

logger = get_logger("mms.business.maintenance.work_order_generator")

USER_GENERATED = 'User Generated'
AUTO_GENERATED = 'Auto Generated'


def estimate_cost(estimated_cost: Optional[float], estimated_hours: Optional[float],
                  labor_rate: Optional[float] = None) -> float:
    """Explicit estimate, else hours at the default unit rate"""
    if estimated_cost is not None:
        return estimated_cost
    if labor_rate is None:
        labor_rate = engine_setting('MMS_DEFAULT_LABOR_RATE')
    return (estimated_hours or 0.0) * labor_rate


class WorkOrderGenerator:
    """
    Builds work orders from backlog items (batch, per-item isolation) and
    from rule templates (single, in the caller's transaction).
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)

    @staticmethod
    def eligible_backlogs(equipment_id: Optional[int] = None) -> List[Backlog]:
        """Backlog items that may be promoted right now"""
        query = Backlog.query.filter(
            Backlog.status.in_(ELIGIBLE_FOR_WORK_ORDER),
            Backlog.work_order_id.is_(None),
            Backlog.is_deleted.is_(False)
        )
        if equipment_id is not None:
            query = query.filter(Backlog.equipment_id == equipment_id)
        return query.order_by(Backlog.priority, Backlog.created_at).all()

    def generate_from_backlogs(
        self,
        backlog_ids: Iterable[int],
        created_by_id: Optional[int] = None,
        wo_type: str = USER_GENERATED
    ) -> BatchResult:
        """
        Promote each eligible backlog into a work order.

        Ineligible items (already linked, completed, in progress, deleted)
        are reported as skipped and never selected.

        Args:
            backlog_ids: Backlog IDs to promote
            created_by_id: Audit user
            wo_type: 'User Generated' unless invoked by the rule engine

        Returns:
            BatchResult whose successes are the created WorkOrder rows
        """
        result = BatchResult(operation='backlog.generate_work_orders')

        for backlog_id in backlog_ids:
            try:
                backlog = db.session.get(Backlog, backlog_id)
                if backlog is None:
                    raise NotFound('Backlog', backlog_id)
                if not is_eligible_for_work_order(backlog):
                    logger.debug(f"Backlog {backlog.code} not eligible ({backlog.status}, wo={backlog.work_order_id})")
                    result.record_skip(backlog_id)
                    continue

                work_order = self._build_from_backlog(backlog, created_by_id, wo_type)
                if work_order is None:
                    # Another caller linked it between the read and the write
                    db.session.rollback()
                    logger.info(f"Backlog {backlog_id} was promoted concurrently, skipping")
                    result.record_skip(backlog_id)
                    continue
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Work order generation failed for backlog {backlog_id}: {e}")
                result.record_failure(backlog_id, e)
                continue

            result.record_success(work_order)
            logger.info(f"Generated work order {work_order.code} from backlog {backlog.code}")
            self.events.emit('workorder.created', work_order)
            self.events.emit('backlog.updated', backlog)

        return result

    def generate_all_eligible(self, equipment_id: Optional[int] = None, created_by_id: Optional[int] = None) -> BatchResult:
        ids = [backlog.id for backlog in self.eligible_backlogs(equipment_id)]
        return self.generate_from_backlogs(ids, created_by_id=created_by_id)

    def _build_from_backlog(self, backlog: Backlog, created_by_id: Optional[int], wo_type: str) -> Optional[WorkOrder]:
        """
        Stage the work order and claim the backlog for it.

        The claim is a conditional UPDATE on the still-unlinked row, so of
        several concurrent callers only one links the backlog. Returns None
        when the claim is lost; the caller rolls back.
        """
        work_order = WorkOrder(
            code=WorkOrderCodeManager.next_code(),
            title=LifecycleNarrator.backlog_work_order_title(backlog.category, backlog.issue),
            description=backlog.issue,
            backlog_id=backlog.id,
            equipment_id=backlog.equipment_id,
            status=WorkOrderStateMachine.PLANNED,
            priority=backlog.priority,
            type='Corrective',
            wo_type=wo_type,
            assigned_to_id=backlog.assigned_to_id,
            scheduled_date=backlog.due_date or datetime.utcnow(),
            estimated_hours=backlog.estimated_hours,
            estimated_cost=estimate_cost(backlog.estimated_cost, backlog.estimated_hours),
            progress=0,
            created_by_id=created_by_id,
            updated_by_id=created_by_id
        )
        db.session.add(work_order)
        db.session.flush()

        claimed = db.session.execute(
            update(Backlog)
            .where(
                Backlog.id == backlog.id,
                Backlog.work_order_id.is_(None),
                Backlog.status.in_(ELIGIBLE_FOR_WORK_ORDER),
                Backlog.is_deleted.is_(False)
            )
            .values(work_order_id=work_order.id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            return None

        backlog.work_order_id = work_order.id
        advance_status(backlog, PLANNED)
        backlog.updated_by_id = created_by_id or backlog.updated_by_id
        return work_order

    def build_from_rule(self, rule, trigger_type: str, threshold: float, current_value: float,
                        description: str, now: Optional[datetime] = None) -> WorkOrder:
        """
        Stage an auto generated work order for a fired rule.

        The caller owns the transaction so the work order and the rule's
        last-fired state commit (or roll back) together.
        """
        if now is None:
            now = datetime.utcnow()

        work_order = WorkOrder(
            code=WorkOrderCodeManager.next_code(),
            title=rule.template_title,
            description=rule.template_description or description,
            equipment_id=rule.equipment_id,
            status=WorkOrderStateMachine.PLANNED,
            priority=rule.priority,
            type=rule.template_type,
            wo_type=AUTO_GENERATED,
            scheduled_date=now,
            estimated_hours=rule.template_estimated_hours,
            auto_generation_rule_id=rule.id,
            trigger_type=trigger_type,
            trigger_threshold=threshold,
            trigger_current_value=current_value,
            trigger_description=description,
            progress=0
        )
        material_total = 0.0
        for template_material in rule.template_materials:
            total = template_material.quantity * template_material.unit_cost
            material_total += total
            work_order.materials.append(WorkOrderMaterial(
                item=template_material.item,
                quantity=template_material.quantity,
                unit_cost=template_material.unit_cost,
                total_cost=total,
                status='Available'
            ))
        work_order.estimated_cost = estimate_cost(None, rule.template_estimated_hours) + material_total

        db.session.add(work_order)
        db.session.flush()
        return work_order
