"""
Inspection Context
Inspection templates and the inspection journey: scheduling, phase
tracking, draft saves, completion and cancellation.
"""

from datetime import datetime
from typing import Dict, List, Optional
from mms import db
from mms.data.core.equipment_info.equipment import Equipment
from mms.data.inspections.inspection import CheckpointResult, Inspection, InspectionFinding, SafetyAcknowledgement
from mms.data.inspections.inspection_template import InspectionTemplate, TemplateCheckpoint
from mms.data.core.sequences import InspectionCodeManager
from mms.business.core.errors import (
    IncompleteMandatoryCheckpoints, IncompleteSafetyChecks, InvalidTransition, NotFound, ValidationError,
)
from mms.business.core.events import EventPublisher, EventSink
from mms.business.core.versioning import commit_with_version_retry
from mms.business.equipment import health_score
from mms.business.equipment.equipment_context import EquipmentContext
from mms.business.equipment.hierarchy_manager import EquipmentHierarchyManager
from mms.business.inspections.completion_result import InspectionCompletionResult
from mms.business.inspections.state_machine import InspectionStateMachine
from mms.business.maintenance.finding_backlog_generator import FindingBacklogGenerator
from mms.business.maintenance.rules.rule_engine import RuleEngine
from mms.logger import get_logger

logger = get_logger("mms.business.inspections")

PHASES = ('measurement', 'engagement')


def _hours_between(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds() / 3600)


def validate_findings(findings: List[Dict]) -> None:
    """
    Raises:
        ValidationError: Missing description or bad status/priority
    """
    for index, finding in enumerate(findings):
        if not finding.get('description'):
            raise ValidationError(f"Finding {index + 1} has no description")
        if finding.get('status') not in InspectionFinding.STATUSES:
            raise ValidationError(f"Invalid finding status: {finding.get('status')}")
        if finding.get('priority', 'low') not in InspectionFinding.PRIORITIES:
            raise ValidationError(f"Invalid finding priority: {finding.get('priority')}")


class InspectionContext:
    """
    Business logic for inspections.

    Journey moves are checked by InspectionStateMachine. The safety gate
    applies when leaving Scheduled, the mandatory checkpoint gate applies at
    completion. Both are checked before anything is written, so a refused
    move leaves the inspection untouched.
    """

    def __init__(self, event_sink: Optional[EventSink] = None, publisher: Optional[EventPublisher] = None):
        self.events = publisher if publisher is not None else EventPublisher(event_sink)
        self.backlog_generator = FindingBacklogGenerator(publisher=self.events)
        self.rule_engine = RuleEngine(publisher=self.events)

    # ----- Templates -----

    def create_template(
        self,
        name: str,
        checkpoints: Optional[List[Dict]] = None,
        safety_checks: Optional[List[str]] = None,
        equipment_types: Optional[List[str]] = None,
        description: Optional[str] = None,
        created_by_id: Optional[int] = None
    ) -> InspectionTemplate:
        """
        Create an inspection template.

        Args:
            name: Template name
            checkpoints: [{'key', 'name', 'checkpoint_type', 'mandatory', 'unit', 'normal_min', 'normal_max'}]
            safety_checks: Ordered safety check texts
            equipment_types: Equipment types the template applies to (empty for any)
            description: Free text
            created_by_id: Audit user

        Raises:
            ValidationError: Bad types or duplicate checkpoint keys
        """
        if not name:
            raise ValidationError("Template name is required")
        for equipment_type in equipment_types or []:
            if equipment_type not in Equipment.TYPES:
                raise ValidationError(f"Invalid equipment type: {equipment_type}")

        seen_keys = set()
        for checkpoint in checkpoints or []:
            key = checkpoint.get('key')
            if not key or not checkpoint.get('name'):
                raise ValidationError("Checkpoints need a key and a name")
            if key in seen_keys:
                raise ValidationError(f"Duplicate checkpoint key: {key}")
            seen_keys.add(key)
            if checkpoint.get('checkpoint_type', 'observation') not in TemplateCheckpoint.TYPES:
                raise ValidationError(f"Invalid checkpoint type: {checkpoint.get('checkpoint_type')}")

        template = InspectionTemplate(
            name=name,
            description=description,
            equipment_types=list(equipment_types or []),
            safety_checks=list(safety_checks or []),
            is_active=True,
            created_by_id=created_by_id,
            updated_by_id=created_by_id
        )
        for index, checkpoint in enumerate(checkpoints or []):
            template.checkpoints.append(TemplateCheckpoint(
                key=checkpoint['key'],
                name=checkpoint['name'],
                checkpoint_type=checkpoint.get('checkpoint_type', 'observation'),
                mandatory=checkpoint.get('mandatory', True),
                unit=checkpoint.get('unit'),
                normal_min=checkpoint.get('normal_min'),
                normal_max=checkpoint.get('normal_max'),
                sort_order=index
            ))
        db.session.add(template)
        db.session.commit()

        logger.info(f"Created inspection template '{name}' ({len(template.checkpoints)} checkpoints)")
        return template

    # ----- Inspections -----

    @staticmethod
    def get_inspection(inspection_id: int) -> Inspection:
        inspection = db.session.get(Inspection, inspection_id)
        if inspection is None or inspection.is_deleted:
            raise NotFound('Inspection', inspection_id)
        return inspection

    def create(
        self,
        equipment_id: int,
        template_id: Optional[int] = None,
        scheduled_date: Optional[datetime] = None,
        assigned_to_id: Optional[int] = None,
        inspection_type: str = 'Routine',
        priority: str = 'Normal',
        estimated_duration: Optional[float] = None,
        created_by_id: Optional[int] = None
    ) -> Inspection:
        """
        Schedule an inspection. The equipment's current health score is
        captured as the starting point for the completion score.

        Raises:
            ValidationError: Bad priority, inactive template or a template
                that does not apply to the equipment type
            NotFound: Equipment or template missing
        """
        if priority not in Inspection.PRIORITIES:
            raise ValidationError(f"Invalid inspection priority: {priority}")
        equipment = EquipmentHierarchyManager.get_equipment(equipment_id)

        if template_id is not None:
            template = db.session.get(InspectionTemplate, template_id)
            if template is None:
                raise NotFound('InspectionTemplate', template_id)
            if not template.is_active:
                raise ValidationError(f"Inspection template '{template.name}' is inactive")
            if not template.applies_to(equipment.type):
                raise ValidationError(
                    f"Inspection template '{template.name}' does not apply to equipment type {equipment.type}"
                )

        try:
            inspection = Inspection(
                code=InspectionCodeManager.next_code(),
                equipment_id=equipment.id,
                template_id=template_id,
                inspection_type=inspection_type,
                priority=priority,
                scheduled_date=scheduled_date or datetime.utcnow(),
                status=InspectionStateMachine.SCHEDULED,
                is_draft=True,
                assigned_to_id=assigned_to_id,
                estimated_duration=estimated_duration,
                health_score_before=equipment.health_score,
                created_by_id=created_by_id,
                updated_by_id=created_by_id
            )
            db.session.add(inspection)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error creating inspection for equipment {equipment_id}: {e}")
            raise

        logger.info(f"Scheduled inspection {inspection.code} for {equipment.code}")
        self.events.emit('inspection.created', inspection)
        return inspection

    def start_phase(self, inspection_id: int, phase: str, now: Optional[datetime] = None) -> Inspection:
        """Stamp the start of the measurement or engagement phase"""
        if phase not in PHASES:
            raise ValidationError(f"Invalid inspection phase: {phase}")
        if now is None:
            now = datetime.utcnow()

        inspection = self.get_inspection(inspection_id)
        self._require_open(inspection)
        if getattr(inspection, f'{phase}_start') is None:
            setattr(inspection, f'{phase}_start', now)
        if inspection.session_started_at is None:
            inspection.session_started_at = now
        db.session.commit()

        self.events.emit('inspection.updated', inspection)
        return inspection

    def end_phase(self, inspection_id: int, phase: str, now: Optional[datetime] = None) -> Inspection:
        """Stamp the end of a started phase"""
        if phase not in PHASES:
            raise ValidationError(f"Invalid inspection phase: {phase}")
        if now is None:
            now = datetime.utcnow()

        inspection = self.get_inspection(inspection_id)
        self._require_open(inspection)
        if getattr(inspection, f'{phase}_start') is None:
            raise InvalidTransition(f"The {phase} phase of {inspection.code} has not started")
        setattr(inspection, f'{phase}_end', now)
        db.session.commit()

        self.events.emit('inspection.updated', inspection)
        return inspection

    def save_journey(
        self,
        inspection_id: int,
        safety_acknowledgements: Optional[Dict[int, bool]] = None,
        checkpoint_results: Optional[Dict[str, Dict]] = None,
        findings: Optional[List[Dict]] = None,
        comments: Optional[str] = None,
        is_draft: bool = True,
        updated_by_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Inspection:
        """
        Save journey progress and move into (or within) InProgress.

        Every save counts as a try. Time since the previous save (or phase
        start) is added to total_time_spent.

        Args:
            inspection_id: Inspection ID
            safety_acknowledgements: {check_index: acknowledged}
            checkpoint_results: {checkpoint_key: {'completed', 'measured_value', 'notes'}}
            findings: Replaces the draft findings when given
            comments: Replaces the comments when given
            is_draft: False marks the journey final (ready for completion)
            updated_by_id: Audit user
            now: Reference time

        Raises:
            IncompleteSafetyChecks: Leaving Scheduled without every safety check acknowledged
            ValidationError: Unknown check index or checkpoint key, bad finding
            InvalidTransition: Inspection is Completed or Cancelled
        """
        if now is None:
            now = datetime.utcnow()
        safety_acknowledgements = safety_acknowledgements or {}
        checkpoint_results = checkpoint_results or {}

        inspection = self.get_inspection(inspection_id)
        current_phase = InspectionStateMachine.phase_of(inspection)
        target_phase = InspectionStateMachine.DRAFT if is_draft else InspectionStateMachine.FINAL
        InspectionStateMachine.validate_transition(current_phase, target_phase)

        template = inspection.template
        self._validate_journey_keys(template, safety_acknowledgements, checkpoint_results)
        if findings is not None:
            validate_findings(findings)

        if current_phase == InspectionStateMachine.SCHEDULED:
            acknowledged = {ack.check_index for ack in inspection.safety_acknowledgements if ack.acknowledged}
            acknowledged |= {int(index) for index, value in safety_acknowledgements.items() if value}
            acknowledged -= {int(index) for index, value in safety_acknowledgements.items() if not value}
            required = set(range(len(template.safety_checks or []))) if template is not None else set()
            missing = sorted(required - acknowledged)
            if missing:
                raise IncompleteSafetyChecks([template.safety_checks[index] for index in missing])

        try:
            self._apply_acknowledgements(inspection, safety_acknowledgements, now)
            self._apply_checkpoint_results(inspection, template, checkpoint_results, now)
            if findings is not None:
                self._replace_findings(inspection, findings, now)
            if comments is not None:
                inspection.comments = comments

            inspection.status = InspectionStateMachine.IN_PROGRESS
            inspection.is_draft = is_draft
            inspection.total_tries = (inspection.total_tries or 0) + 1
            if inspection.session_started_at is not None:
                inspection.total_time_spent = (
                    (inspection.total_time_spent or 0.0) + _hours_between(inspection.session_started_at, now)
                )
            inspection.session_started_at = now
            inspection.updated_by_id = updated_by_id or inspection.updated_by_id
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error saving journey of inspection {inspection_id}: {e}")
            raise

        logger.debug(f"Journey saved for {inspection.code} (try {inspection.total_tries}, draft={is_draft})")
        self.events.emit('inspection.updated', inspection)
        return inspection

    def complete(
        self,
        inspection_id: int,
        completed_by_id: Optional[int] = None,
        findings: Optional[List[Dict]] = None,
        comments: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> InspectionCompletionResult:
        """
        Complete an inspection.

        Writes the evidence-based health score back to the equipment, then
        generates backlogs for qualifying findings and evaluates the
        equipment's inspection_finding rules.

        Args:
            inspection_id: Inspection ID
            completed_by_id: Performer
            findings: Final findings; replaces the draft findings when given
            comments: Final comments
            now: Reference time

        Raises:
            IncompleteMandatoryCheckpoints: A mandatory checkpoint is not marked complete
            InvalidTransition: Inspection is not InProgress

        Returns:
            InspectionCompletionResult
        """
        if now is None:
            now = datetime.utcnow()

        inspection = self.get_inspection(inspection_id)
        current_phase = InspectionStateMachine.phase_of(inspection)
        if current_phase == InspectionStateMachine.DRAFT:
            InspectionStateMachine.validate_transition(current_phase, InspectionStateMachine.FINAL)
            current_phase = InspectionStateMachine.FINAL
        InspectionStateMachine.validate_transition(current_phase, InspectionStateMachine.COMPLETED)

        if findings is not None:
            validate_findings(findings)
        missing = self.missing_mandatory_checkpoints(inspection)
        if missing:
            raise IncompleteMandatoryCheckpoints(missing)

        def apply():
            inspection = self.get_inspection(inspection_id)
            if findings is not None:
                self._replace_findings(inspection, findings, now)
            if comments is not None:
                inspection.comments = comments

            failed = sum(1 for finding in inspection.findings if finding.status == 'failed')
            observations = sum(1 for finding in inspection.findings if finding.status == 'observation')
            before = inspection.health_score_before
            if before is None:
                before = inspection.equipment.health_score
            after = health_score.inspection_score(before, failed, observations)

            inspection.status = InspectionStateMachine.COMPLETED
            inspection.is_draft = False
            inspection.completed_by_id = completed_by_id or inspection.assigned_to_id
            inspection.completed_date = now
            inspection.health_score_after = after
            self._close_session(inspection, now)
            inspection.updated_by_id = completed_by_id or inspection.updated_by_id

            EquipmentContext.apply_inspection_score(inspection.equipment, after, now)
            return inspection, failed, observations

        inspection, failed, observations = commit_with_version_retry(apply, f"completion of inspection {inspection_id}")
        logger.info(
            f"Inspection {inspection.code} completed: health {inspection.health_score_before} -> "
            f"{inspection.health_score_after} ({failed} failed, {observations} observation)"
        )
        self.events.emit('inspection.completed', inspection)
        self.events.emit('equipment.updated', inspection.equipment)

        qualifying = len(self.backlog_generator.qualifying_findings(inspection))
        backlogs = self.backlog_generator.generate_for_inspection(inspection)
        work_orders = self.rule_engine.evaluate_inspection_findings(inspection, qualifying, now=now)

        return InspectionCompletionResult(
            inspection=inspection,
            health_score_before=inspection.health_score_before,
            health_score_after=inspection.health_score_after,
            failed_count=failed,
            observation_count=observations,
            backlogs=backlogs,
            work_orders=work_orders
        )

    def cancel(self, inspection_id: int, reason: Optional[str] = None, updated_by_id: Optional[int] = None,
               now: Optional[datetime] = None) -> Inspection:
        """Cancel from any non-terminal phase"""
        if now is None:
            now = datetime.utcnow()

        inspection = self.get_inspection(inspection_id)
        InspectionStateMachine.validate_transition(
            InspectionStateMachine.phase_of(inspection), InspectionStateMachine.CANCELLED
        )
        inspection.status = InspectionStateMachine.CANCELLED
        inspection.cancellation_reason = reason
        self._close_session(inspection, now)
        inspection.updated_by_id = updated_by_id or inspection.updated_by_id
        db.session.commit()

        logger.info(f"Inspection {inspection.code} cancelled")
        self.events.emit('inspection.cancelled', inspection)
        return inspection

    @staticmethod
    def missing_mandatory_checkpoints(inspection: Inspection) -> List[str]:
        """Mandatory checkpoint keys not yet marked complete"""
        if inspection.template is None:
            return []
        completed = {result.checkpoint_key for result in inspection.checkpoint_results if result.completed}
        return sorted(inspection.template.mandatory_checkpoint_keys - completed)

    # ----- Helpers -----

    @staticmethod
    def _require_open(inspection: Inspection) -> None:
        if inspection.status in InspectionStateMachine.TERMINAL_STATES:
            raise InvalidTransition(f"Inspection {inspection.code} is {inspection.status}")

    @staticmethod
    def _validate_journey_keys(template: Optional[InspectionTemplate], safety_acknowledgements: Dict,
                               checkpoint_results: Dict) -> None:
        check_count = len(template.safety_checks or []) if template is not None else 0
        for index in safety_acknowledgements:
            if not isinstance(index, int) or not 0 <= index < check_count:
                raise ValidationError(f"Unknown safety check index: {index}")

        known_keys = {checkpoint.key for checkpoint in template.checkpoints} if template is not None else set()
        unknown = set(checkpoint_results) - known_keys
        if unknown:
            raise ValidationError(f"Unknown checkpoint key(s): {', '.join(sorted(unknown))}")

    @staticmethod
    def _apply_acknowledgements(inspection: Inspection, acknowledgements: Dict[int, bool], now: datetime) -> None:
        existing = {ack.check_index: ack for ack in inspection.safety_acknowledgements}
        for index, value in acknowledgements.items():
            ack = existing.get(index)
            if ack is None:
                ack = SafetyAcknowledgement(check_index=index)
                inspection.safety_acknowledgements.append(ack)
            ack.acknowledged = bool(value)
            ack.acknowledged_at = now if value else None

    @staticmethod
    def _apply_checkpoint_results(inspection: Inspection, template: Optional[InspectionTemplate],
                                  results: Dict[str, Dict], now: datetime) -> None:
        if not results:
            return
        checkpoints = {checkpoint.key: checkpoint for checkpoint in template.checkpoints}
        existing = {result.checkpoint_key: result for result in inspection.checkpoint_results}
        for key, values in results.items():
            row = existing.get(key)
            if row is None:
                row = CheckpointResult(checkpoint_key=key)
                inspection.checkpoint_results.append(row)
            row.completed = bool(values.get('completed', False))
            if 'measured_value' in values:
                row.measured_value = values['measured_value']
            if 'notes' in values:
                row.notes = values['notes']
            row.within_range = (
                checkpoints[key].is_within_normal_range(row.measured_value)
                if row.measured_value is not None else None
            )
            row.recorded_at = now

    @staticmethod
    def _replace_findings(inspection: Inspection, findings: List[Dict], now: datetime) -> None:
        inspection.findings.clear()
        for index, finding in enumerate(findings):
            inspection.findings.append(InspectionFinding(
                description=finding['description'],
                status=finding['status'],
                priority=finding.get('priority', 'low'),
                action=finding.get('action'),
                timestamp=finding.get('timestamp') or now,
                sort_order=index
            ))

    @staticmethod
    def _close_session(inspection: Inspection, now: datetime) -> None:
        if inspection.session_started_at is not None:
            inspection.total_time_spent = (
                (inspection.total_time_spent or 0.0) + _hours_between(inspection.session_started_at, now)
            )
            inspection.session_started_at = None
        if inspection.engagement_start is not None and inspection.engagement_end is None:
            inspection.engagement_end = now
