"""
Auto Work Order Rule Engine
Evaluates rules against their equipment and spawns Auto Generated work
orders, at most once per firing.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from mms import db
from mms.data.core.equipment_info.equipment import Equipment
from mms.data.maintenance.auto_work_order_rule import AutoWorkOrderRule, RuleTemplateMaterial
from mms.data.maintenance.work_order import WorkOrder
from mms.data.core.sequences import RuleCodeManager
from mms.business.core.batch_result import BatchResult
from mms.business.core.errors import NotFound, ValidationError
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.versioning import commit_with_version_retry
from mms.business.equipment.hierarchy_manager import EquipmentHierarchyManager
from mms.business.maintenance.rules.trigger_behaviors import TRIGGER_BEHAVIORS, select_trigger_behavior
from mms.business.maintenance.rules.trigger_result import TriggerResult
from mms.business.maintenance.work_order_generator import WorkOrderGenerator
from mms.logger import get_logger

logger = get_logger("mms.business.maintenance.rules")

POLLED_TRIGGER_TYPES = tuple(name for name, behavior in TRIGGER_BEHAVIORS.items() if behavior.polled)


class RuleEngine:
    """
    Orchestrates rule evaluation.

    Responsibilities:
    - Behavior selection by trigger type
    - Last-fired state (`is_armed`, `last_triggered`) so a fired rule does
      not spawn again until its condition clears or its interval elapses
    - Committing the spawned work order and the rule update together
    - Per-rule fault isolation during the poll
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)
        self.generator = WorkOrderGenerator(publisher=self.events)

    @staticmethod
    def get_rule(rule_id: int) -> AutoWorkOrderRule:
        rule = db.session.get(AutoWorkOrderRule, rule_id)
        if rule is None:
            raise NotFound('AutoWorkOrderRule', rule_id)
        return rule

    def create_rule(
        self,
        equipment_id: int,
        name: str,
        trigger_type: str,
        trigger_value: float,
        template_title: str,
        trigger_unit: Optional[str] = None,
        priority: str = 'P2',
        template_description: Optional[str] = None,
        template_type: str = 'Preventive',
        template_estimated_hours: Optional[float] = None,
        template_materials: Optional[List[Dict]] = None,
        created_by_id: Optional[int] = None
    ) -> AutoWorkOrderRule:
        """
        Create an armed rule.

        Args:
            equipment_id: Equipment the rule watches
            name: Display name
            trigger_type: running_hours, calendar_based, condition_based or inspection_finding
            trigger_value: Threshold (hours, interval, health score or finding count)
            template_title: Title for spawned work orders
            trigger_unit: Defaults per trigger type
            priority: Priority of spawned work orders
            template_description: Description for spawned work orders
            template_type: Work order type for spawned work orders
            template_estimated_hours: Planned hours, used for the cost estimate
            template_materials: [{'item', 'quantity', 'unit_cost'}, ...]
            created_by_id: Audit user

        Raises:
            ValidationError: Bad enum values or thresholds
            NotFound: Equipment missing or deleted
        """
        if trigger_type not in AutoWorkOrderRule.TRIGGER_TYPES:
            raise ValidationError(f"Invalid trigger type: {trigger_type}")
        if trigger_unit is None:
            trigger_unit = {
                'running_hours': 'hours',
                'calendar_based': 'days',
            }.get(trigger_type, 'threshold')
        if trigger_unit not in AutoWorkOrderRule.TRIGGER_UNITS:
            raise ValidationError(f"Invalid trigger unit: {trigger_unit}")
        if trigger_value is None or trigger_value <= 0:
            raise ValidationError("trigger_value must be positive")
        if priority not in WorkOrder.PRIORITIES:
            raise ValidationError(f"Invalid priority: {priority}")
        if template_type not in WorkOrder.TYPES:
            raise ValidationError(f"Invalid work order type: {template_type}")
        if not name or not template_title:
            raise ValidationError("Rule name and template title are required")
        EquipmentHierarchyManager.get_equipment(equipment_id)

        try:
            rule = AutoWorkOrderRule(
                code=RuleCodeManager.next_code(),
                name=name,
                equipment_id=equipment_id,
                trigger_type=trigger_type,
                trigger_value=trigger_value,
                trigger_unit=trigger_unit,
                priority=priority,
                is_armed=True,
                is_active=True,
                template_title=template_title,
                template_description=template_description,
                template_type=template_type,
                template_estimated_hours=template_estimated_hours,
                created_by_id=created_by_id,
                updated_by_id=created_by_id
            )
            for material in template_materials or []:
                if material.get('quantity', 1.0) <= 0 or material.get('unit_cost', 0.0) < 0:
                    raise ValidationError(f"Invalid template material: {material}")
                rule.template_materials.append(RuleTemplateMaterial(
                    item=material['item'],
                    quantity=material.get('quantity', 1.0),
                    unit_cost=material.get('unit_cost', 0.0)
                ))
            db.session.add(rule)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error creating rule '{name}': {e}")
            raise

        logger.info(f"Created rule {rule.code} ({trigger_type} {trigger_value:g} {trigger_unit})")
        return rule

    def set_active(self, rule_id: int, is_active: bool, updated_by_id: Optional[int] = None) -> AutoWorkOrderRule:
        """Enable or disable a rule; enabling re-arms it"""
        def apply():
            rule = self.get_rule(rule_id)
            rule.is_active = is_active
            if is_active:
                rule.is_armed = True
            rule.updated_by_id = updated_by_id or rule.updated_by_id
            return rule

        return commit_with_version_retry(apply, f"rule {rule_id} activation")

    @staticmethod
    def should_trigger(rule: AutoWorkOrderRule, equipment: Equipment, now: Optional[datetime] = None) -> bool:
        """
        True when the rule's condition holds and the rule may fire now.

        Inspection finding rules are never triggered from here; see
        evaluate_inspection_findings.
        """
        if now is None:
            now = datetime.utcnow()
        behavior = select_trigger_behavior(rule.trigger_type)
        if behavior is None or not behavior.polled or not rule.is_active:
            return False
        result = behavior.evaluate(rule, equipment, now)
        return result.condition_met and (rule.is_armed or not behavior.requires_rearm)

    def evaluate_rule(self, rule_id: int, now: Optional[datetime] = None, **behavior_kwargs) -> Tuple[TriggerResult, Optional[WorkOrder]]:
        """
        Evaluate one rule and fire it if allowed.

        The work order and the rule's last-fired state are committed in one
        transaction. The rule row is versioned, so if two evaluations race
        the loser retries, sees the rule already fired, and does nothing.

        Returns:
            (TriggerResult, spawned WorkOrder or None)
        """
        if now is None:
            now = datetime.utcnow()

        def apply():
            rule = self.get_rule(rule_id)
            behavior = select_trigger_behavior(rule.trigger_type)
            if behavior is None:
                raise ValidationError(f"Invalid trigger type: {rule.trigger_type}")
            equipment = rule.equipment
            if equipment is None or equipment.is_deleted:
                raise NotFound('Equipment', rule.equipment_id)

            result = behavior.evaluate(rule, equipment, now, **behavior_kwargs)

            if not rule.is_active:
                result.reason = 'inactive'
                return result, None

            if not result.condition_met:
                if behavior.requires_rearm and not rule.is_armed:
                    rule.is_armed = True
                    result.reason = 'condition cleared, re-armed'
                    logger.debug(f"Rule {rule.code} re-armed")
                else:
                    result.reason = 'condition not met'
                return result, None

            if behavior.requires_rearm and not rule.is_armed:
                result.reason = 'already fired, waiting for condition to clear'
                return result, None

            work_order = self.generator.build_from_rule(
                rule,
                trigger_type=rule.trigger_type,
                threshold=result.threshold,
                current_value=result.current_value,
                description=result.description,
                now=now
            )
            rule.last_triggered = now
            rule.next_trigger = behavior.next_trigger(rule, now)
            if behavior.requires_rearm:
                rule.is_armed = False

            result.should_fire = True
            result.reason = 'fired'
            result.work_order_id = work_order.id
            return result, work_order

        result, work_order = commit_with_version_retry(apply, f"evaluation of rule {rule_id}")
        if work_order is not None:
            logger.info(f"Rule {rule_id} fired: work order {work_order.code} ({result.description})")
            self.events.emit('workorder.created', work_order)
        return result, work_order

    def _evaluate_batch(self, operation: str, rule_ids: Iterable[int], now: datetime, **behavior_kwargs) -> BatchResult:
        result = BatchResult(operation=operation)
        for rule_id in rule_ids:
            try:
                trigger_result, work_order = self.evaluate_rule(rule_id, now=now, **behavior_kwargs)
            except Exception as e:
                logger.error(f"Evaluation of rule {rule_id} failed: {e}")
                result.record_failure(rule_id, e)
                continue

            if work_order is not None:
                result.record_success(work_order)
            else:
                result.record_skip(rule_id)
        return result

    def evaluate_all(self, now: Optional[datetime] = None) -> BatchResult:
        """
        Poll-cycle entry point: evaluate every active polled rule.

        A failing rule is recorded and the cycle moves on; the next poll is
        the only retry.

        Returns:
            BatchResult whose successes are the spawned WorkOrder rows
        """
        if now is None:
            now = datetime.utcnow()

        rule_ids = [
            row.id for row in AutoWorkOrderRule.query.join(Equipment).filter(
                AutoWorkOrderRule.is_active.is_(True),
                AutoWorkOrderRule.trigger_type.in_(POLLED_TRIGGER_TYPES),
                Equipment.is_deleted.is_(False)
            ).order_by(AutoWorkOrderRule.id).all()
        ]

        result = self._evaluate_batch('rules.evaluate_all', rule_ids, now)
        logger.info(
            f"Rule evaluation: {len(rule_ids)} rule(s), {result.success_count} work order(s) spawned, "
            f"{result.failure_count} failed"
        )
        return result

    def evaluate_inspection_findings(self, inspection, finding_count: int, now: Optional[datetime] = None) -> BatchResult:
        """
        Evaluate the inspection_finding rules of the inspected equipment.

        Args:
            inspection: The just-completed Inspection
            finding_count: Number of findings that qualified for a backlog
            now: Reference time
        """
        if now is None:
            now = datetime.utcnow()

        rule_ids = [
            row.id for row in AutoWorkOrderRule.query.filter_by(
                equipment_id=inspection.equipment_id,
                trigger_type='inspection_finding',
                is_active=True
            ).order_by(AutoWorkOrderRule.id).all()
        ]
        if not rule_ids:
            return BatchResult(operation='rules.inspection_findings')

        return self._evaluate_batch(
            'rules.inspection_findings', rule_ids, now,
            finding_count=finding_count, inspection_code=inspection.code
        )
