"""
Inspection Completion Result Data Structure
Everything an inspection completion produced.
"""

from dataclasses import dataclass
from typing import Dict, Optional
from mms.business.core.batch_result import BatchResult


@dataclass
class InspectionCompletionResult:
    """Result of completing one inspection"""
    inspection: object
    health_score_before: Optional[int]
    health_score_after: int
    failed_count: int
    observation_count: int
    backlogs: BatchResult
    work_orders: BatchResult

    def to_dict(self) -> Dict:
        """Convert InspectionCompletionResult to dictionary for serialization"""
        return {
            'inspection': self.inspection.code,
            'health_score_before': self.health_score_before,
            'health_score_after': self.health_score_after,
            'failed_count': self.failed_count,
            'observation_count': self.observation_count,
            'backlogs': self.backlogs.to_dict(),
            'work_orders': self.work_orders.to_dict(),
        }
