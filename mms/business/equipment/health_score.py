"""
Health Score Calculator
Baseline equipment health from running hours, age and accumulated cost.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional
from mms.business.core.settings import engine_setting

MAX_SCORE = 100
MIN_SCORE = 0
OVERDUE_HOURS_DIVISOR = 10
OVERDUE_PENALTY_CAP = 30
AGE_PENALTY_PER_YEAR = 2
AGE_PENALTY_CAP = 20
COST_PENALTY = 10


@dataclass
class HealthScoreBreakdown:
    """Individual deductions behind a baseline score"""
    overdue_penalty: float = 0.0
    age_penalty: float = 0.0
    cost_penalty: float = 0.0
    score: int = MAX_SCORE
    details: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'overdue_penalty': self.overdue_penalty,
            'age_penalty': self.age_penalty,
            'cost_penalty': self.cost_penalty,
            'score': self.score,
            'details': self.details,
        }


def age_in_years(commission_date: Optional[datetime], now: datetime) -> int:
    """Whole 365-day years between commissioning and now"""
    if commission_date is None:
        return 0
    return max((now - commission_date).days // 365, 0)


def clamp_score(value: float) -> int:
    return int(max(MIN_SCORE, min(MAX_SCORE, round(value))))


def breakdown(equipment, now: Optional[datetime] = None, cost_threshold: Optional[float] = None) -> HealthScoreBreakdown:
    """
    Compute the baseline score with its deductions.

    Args:
        equipment: Equipment (or any object with the same attributes)
        now: Reference time (defaults to utcnow)
        cost_threshold: Maintenance cost above which the flat penalty applies

    Returns:
        HealthScoreBreakdown
    """
    if now is None:
        now = datetime.utcnow()
    if cost_threshold is None:
        cost_threshold = engine_setting('MMS_HEALTH_COST_THRESHOLD')

    result = HealthScoreBreakdown()

    running_hours = equipment.running_hours or 0.0
    next_maintenance_hours = equipment.next_maintenance_hours or 0.0
    if running_hours > next_maintenance_hours:
        overdue = running_hours - next_maintenance_hours
        result.overdue_penalty = min(OVERDUE_PENALTY_CAP, overdue / OVERDUE_HOURS_DIVISOR)
        result.details['overdue_hours'] = overdue

    years = age_in_years(equipment.commission_date, now)
    if years:
        result.age_penalty = min(AGE_PENALTY_CAP, years * AGE_PENALTY_PER_YEAR)
        result.details['age_years'] = years

    if (equipment.maintenance_cost or 0.0) > cost_threshold:
        result.cost_penalty = COST_PENALTY

    result.score = clamp_score(MAX_SCORE - result.overdue_penalty - result.age_penalty - result.cost_penalty)
    return result


def score(equipment, now: Optional[datetime] = None, cost_threshold: Optional[float] = None) -> int:
    """Baseline health score in [0, 100]"""
    return breakdown(equipment, now=now, cost_threshold=cost_threshold).score


def has_recent_inspection(equipment, now: Optional[datetime] = None, window_days: Optional[int] = None) -> bool:
    """
    Whether an inspection-derived score is still authoritative.

    While it is, the baseline formula must not overwrite it.
    """
    if equipment.last_inspected_at is None:
        return False
    if now is None:
        now = datetime.utcnow()
    if window_days is None:
        window_days = engine_setting('MMS_HEALTH_INSPECTION_WINDOW_DAYS')
    return now - equipment.last_inspected_at <= timedelta(days=window_days)


def inspection_score(score_before: int, failed_count: int, observation_count: int) -> int:
    """Evidence-based score written back on inspection completion, floored at 50"""
    return clamp_score(max(50, (score_before or 0) - 10 * failed_count - 2 * observation_count))
