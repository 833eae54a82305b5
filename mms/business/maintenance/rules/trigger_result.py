"""
Trigger Result Data Structure
Outcome of evaluating one auto work order rule against its equipment.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional


@dataclass
class TriggerResult:
    """Result of a single rule evaluation"""
    rule_id: int
    trigger_type: str
    condition_met: bool
    threshold: float
    current_value: Optional[float]
    description: str
    evaluated_at: datetime

    # Set once the engine has decided whether the rule may fire
    should_fire: bool = False
    reason: Optional[str] = None
    work_order_id: Optional[int] = None

    def to_dict(self) -> Dict:
        """Convert TriggerResult to dictionary for serialization"""
        return {
            'rule_id': self.rule_id,
            'trigger_type': self.trigger_type,
            'condition_met': self.condition_met,
            'should_fire': self.should_fire,
            'threshold': self.threshold,
            'current_value': self.current_value,
            'description': self.description,
            'reason': self.reason,
            'work_order_id': self.work_order_id,
            'evaluated_at': self.evaluated_at.isoformat() if self.evaluated_at else None,
        }
