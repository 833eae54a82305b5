"""
Finding -> Backlog Generator
Turns severe findings of a completed inspection into backlog items.
"""

from dataclasses import dataclass
from typing import List, Optional
from mms import db
from mms.data.maintenance.backlog import Backlog
from mms.data.core.sequences import BacklogCodeManager
from mms.business.core.batch_result import BatchResult
from mms.business.core.events import EventPublisher, EventSink
from mms.business.maintenance.backlog_manager import OPEN
from mms.logger import get_logger

logger = get_logger("mms.business.maintenance.finding_backlog")

FINDING_PRIORITY_TO_BACKLOG = {
    'critical': 'P1',
    'high': 'P2',
}
DEFAULT_BACKLOG_PRIORITY = 'P3'


@dataclass
class FindingSnapshot:
    """Plain copy of a finding so a rollback mid-batch cannot expire it"""
    id: int
    description: str
    status: str
    priority: str
    action: Optional[str]


def finding_qualifies(status: str, priority: str) -> bool:
    return status == 'failed' or priority in ('high', 'critical')


def backlog_priority_for(finding_priority: str) -> str:
    return FINDING_PRIORITY_TO_BACKLOG.get(finding_priority, DEFAULT_BACKLOG_PRIORITY)


class FindingBacklogGenerator:
    """
    Batch generator over the findings of one inspection.

    Each backlog is committed on its own; one failing finding is recorded
    and the rest are still processed.
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)

    @staticmethod
    def qualifying_findings(inspection) -> List[FindingSnapshot]:
        return [
            FindingSnapshot(
                id=finding.id,
                description=finding.description,
                status=finding.status,
                priority=finding.priority,
                action=finding.action
            )
            for finding in inspection.findings
            if finding_qualifies(finding.status, finding.priority)
        ]

    def generate_for_inspection(self, inspection) -> BatchResult:
        """
        Create one backlog per qualifying finding.

        Args:
            inspection: A Completed Inspection

        Returns:
            BatchResult whose successes are the created Backlog rows
        """
        inspection_id = inspection.id
        inspection_code = inspection.code
        equipment_id = inspection.equipment_id
        created_by_id = inspection.completed_by_id or inspection.assigned_to_id
        findings = self.qualifying_findings(inspection)

        result = BatchResult(operation='inspection.findings_to_backlog')

        for finding in findings:
            try:
                backlog = self._create_backlog(finding, inspection_id, equipment_id, created_by_id)
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Backlog generation failed for finding {finding.id} of {inspection_code}: {e}")
                result.record_failure(finding.id, e)
                continue

            result.record_success(backlog)
            self.events.emit('backlog.created', backlog)

        logger.info(
            f"Inspection {inspection_code}: {result.success_count} backlog(s) generated, "
            f"{result.failure_count} failed"
        )
        return result

    def _create_backlog(self, finding: FindingSnapshot, inspection_id: int, equipment_id: int,
                        created_by_id: Optional[int]) -> Backlog:
        issue = finding.description
        if finding.action:
            issue = f"{issue} | Action: {finding.action}"

        backlog = Backlog(
            code=BacklogCodeManager.next_code(),
            equipment_id=equipment_id,
            issue=issue,
            category='Inspection Finding',
            priority=backlog_priority_for(finding.priority),
            status=OPEN,
            source='Inspection Finding',
            auto_generated=True,
            source_reference_type='Inspection',
            source_reference_id=inspection_id,
            created_by_id=created_by_id,
            updated_by_id=created_by_id
        )
        db.session.add(backlog)
        db.session.flush()
        return backlog
