"""
Trigger Behaviors
One behavior per rule trigger type. Each decides whether the rule's
condition currently holds; arming and dedup belong to the engine.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional
from mms.business.core.narrator import LifecycleNarrator
from mms.business.maintenance.planning.frequency_behaviors import add_months
from mms.business.maintenance.rules.trigger_result import TriggerResult


class BaseTriggerBehavior(ABC):
    """Abstract base class for trigger behaviors"""

    # Poll-driven behaviors are evaluated by evaluate_all
    polled = True

    # Level-triggered behaviors must see their condition go false before re-firing
    requires_rearm = True

    @abstractmethod
    def evaluate(self, rule, equipment, now: datetime) -> TriggerResult:
        """
        Evaluate the rule's condition against the equipment.

        Args:
            rule: AutoWorkOrderRule being evaluated
            equipment: The rule's Equipment
            now: Reference time

        Returns:
            TriggerResult with condition_met set
        """
        pass

    def next_trigger(self, rule, fired_at: datetime) -> Optional[datetime]:
        """Projected next firing time, where one can be known"""
        return None


class RunningHoursTrigger(BaseTriggerBehavior):
    """Fires when running hours since the last maintenance reach the threshold"""

    def evaluate(self, rule, equipment, now: datetime) -> TriggerResult:
        delta = (equipment.running_hours or 0.0) - (equipment.last_maintenance_hours or 0.0)
        return TriggerResult(
            rule_id=rule.id,
            trigger_type=rule.trigger_type,
            condition_met=delta >= rule.trigger_value,
            threshold=rule.trigger_value,
            current_value=delta,
            description=LifecycleNarrator.running_hours_trigger(delta, rule.trigger_value),
            evaluated_at=now
        )


class CalendarTrigger(BaseTriggerBehavior):
    """
    Fires when the rule has never fired, or when its interval has elapsed
    since it last did. The interval unit is days unless the rule says
    weeks or months.
    """

    requires_rearm = False

    def _due_at(self, rule, last_triggered: datetime) -> datetime:
        if rule.trigger_unit == 'months':
            return add_months(last_triggered, int(rule.trigger_value))
        if rule.trigger_unit == 'weeks':
            return last_triggered + timedelta(weeks=rule.trigger_value)
        return last_triggered + timedelta(days=rule.trigger_value)

    def evaluate(self, rule, equipment, now: datetime) -> TriggerResult:
        if rule.last_triggered is None:
            days_since = None
            condition_met = True
        else:
            days_since = round((now - rule.last_triggered).total_seconds() / 86400, 2)
            condition_met = now >= self._due_at(rule, rule.last_triggered)
        return TriggerResult(
            rule_id=rule.id,
            trigger_type=rule.trigger_type,
            condition_met=condition_met,
            threshold=rule.trigger_value,
            current_value=days_since,
            description=LifecycleNarrator.calendar_trigger(days_since, rule.trigger_value),
            evaluated_at=now
        )

    def next_trigger(self, rule, fired_at: datetime) -> Optional[datetime]:
        return self._due_at(rule, fired_at)


class ConditionTrigger(BaseTriggerBehavior):
    """Fires when the equipment health score drops below the threshold"""

    def evaluate(self, rule, equipment, now: datetime) -> TriggerResult:
        health = equipment.health_score if equipment.health_score is not None else 100
        return TriggerResult(
            rule_id=rule.id,
            trigger_type=rule.trigger_type,
            condition_met=health < rule.trigger_value,
            threshold=rule.trigger_value,
            current_value=float(health),
            description=LifecycleNarrator.condition_trigger(health, rule.trigger_value),
            evaluated_at=now
        )


class InspectionFindingTrigger(BaseTriggerBehavior):
    """
    Fires from inspection completion when the number of qualifying findings
    reaches the threshold. Never evaluated on the poll cycle.
    """

    polled = False
    requires_rearm = False

    def evaluate(self, rule, equipment, now: datetime, finding_count: int = 0,
                 inspection_code: Optional[str] = None) -> TriggerResult:
        return TriggerResult(
            rule_id=rule.id,
            trigger_type=rule.trigger_type,
            condition_met=finding_count > 0 and finding_count >= rule.trigger_value,
            threshold=rule.trigger_value,
            current_value=float(finding_count),
            description=LifecycleNarrator.inspection_finding_trigger(
                finding_count, rule.trigger_value, inspection_code or '?'
            ),
            evaluated_at=now
        )


TRIGGER_BEHAVIORS = {
    'running_hours': RunningHoursTrigger(),
    'calendar_based': CalendarTrigger(),
    'condition_based': ConditionTrigger(),
    'inspection_finding': InspectionFindingTrigger(),
}


def select_trigger_behavior(trigger_type: str) -> Optional[BaseTriggerBehavior]:
    return TRIGGER_BEHAVIORS.get(trigger_type)
