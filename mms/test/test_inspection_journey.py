"""
Tests for the inspection journey: safety gate, draft saves, mandatory
checkpoint gate, completion writeback and backlog generation
"""
from datetime import datetime, timedelta
import pytest
from mms.business.core.errors import (
    IncompleteMandatoryCheckpoints, IncompleteSafetyChecks, InvalidTransition, ValidationError,
)
from mms.business.inspections.state_machine import InspectionStateMachine
from mms.data.maintenance.backlog import Backlog
from mms.test.conftest import set_health

START = datetime(2024, 3, 1, 8, 0)


@pytest.fixture
def template(engine):
    return engine.inspections.create_template(
        name='Pump monthly',
        equipment_types=['equipment'],
        safety_checks=['Lockout applied', 'PPE worn'],
        checkpoints=[
            {'key': 'vibration', 'name': 'Bearing vibration', 'checkpoint_type': 'measurement',
             'unit': 'mm/s', 'normal_min': 0, 'normal_max': 7.1},
            {'key': 'visual', 'name': 'Visual check'},
            {'key': 'noise', 'name': 'Noise check', 'mandatory': False},
        ],
    )


@pytest.fixture
def inspection(engine, pump, template):
    set_health(pump, 80)
    return engine.inspections.create(pump.id, template_id=template.id, scheduled_date=START)


def start_journey(engine, inspection, now=START):
    return engine.inspections.save_journey(inspection.id, safety_acknowledgements={0: True, 1: True}, now=now)


def test_create_captures_health_and_code(engine, inspection):
    assert inspection.code == 'INSP-000001'
    assert inspection.status == InspectionStateMachine.SCHEDULED
    assert inspection.health_score_before == 80
    assert engine.events.sink.of_type('inspection.created')


def test_template_must_apply_to_equipment_type(engine, plant, template):
    with pytest.raises(ValidationError):
        engine.inspections.create(plant.id, template_id=template.id)


def test_safety_checks_gate_entry(engine, inspection):
    with pytest.raises(IncompleteSafetyChecks) as excinfo:
        engine.inspections.save_journey(inspection.id, safety_acknowledgements={0: True}, now=START)
    assert excinfo.value.missing == ['PPE worn']
    assert inspection.status == InspectionStateMachine.SCHEDULED
    assert inspection.total_tries == 0

    start_journey(engine, inspection)
    assert InspectionStateMachine.phase_of(inspection) == InspectionStateMachine.DRAFT


def test_unknown_keys_are_rejected(engine, inspection):
    start_journey(engine, inspection)
    with pytest.raises(ValidationError):
        engine.inspections.save_journey(inspection.id, checkpoint_results={'pressure': {'completed': True}})
    with pytest.raises(ValidationError):
        engine.inspections.save_journey(inspection.id, safety_acknowledgements={5: True})


def test_draft_saves_count_tries_and_time(engine, inspection):
    start_journey(engine, inspection)
    engine.inspections.save_journey(
        inspection.id,
        checkpoint_results={'vibration': {'completed': True, 'measured_value': 9.3}},
        now=START + timedelta(minutes=30),
    )
    engine.inspections.save_journey(inspection.id, comments='Half way', now=START + timedelta(hours=2))

    assert inspection.total_tries == 3
    assert inspection.total_time_spent == pytest.approx(2.0)
    result = inspection.checkpoint_results[0]
    assert result.checkpoint_key == 'vibration'
    assert result.within_range is False


def test_phase_tracking(engine, inspection):
    engine.inspections.start_phase(inspection.id, 'measurement', now=START)
    engine.inspections.end_phase(inspection.id, 'measurement', now=START + timedelta(hours=1))
    assert inspection.measurement_start == START
    assert inspection.measurement_end == START + timedelta(hours=1)

    with pytest.raises(InvalidTransition):
        engine.inspections.end_phase(inspection.id, 'engagement')
    with pytest.raises(ValidationError):
        engine.inspections.start_phase(inspection.id, 'lunch')


def test_completion_requires_mandatory_checkpoints(engine, inspection):
    start_journey(engine, inspection)
    engine.inspections.save_journey(
        inspection.id, checkpoint_results={'vibration': {'completed': True, 'measured_value': 3.2}}
    )

    with pytest.raises(IncompleteMandatoryCheckpoints) as excinfo:
        engine.inspections.complete(inspection.id)
    assert excinfo.value.missing == ['visual']
    assert inspection.status == InspectionStateMachine.IN_PROGRESS
    assert inspection.health_score_after is None


def test_completion_cannot_skip_in_progress(engine, inspection):
    with pytest.raises(InvalidTransition):
        engine.inspections.complete(inspection.id)


def test_completion_scores_and_generates_backlogs(engine, pump, inspection):
    start_journey(engine, inspection)
    engine.inspections.save_journey(
        inspection.id,
        checkpoint_results={'vibration': {'completed': True, 'measured_value': 8.0}, 'visual': {'completed': True}},
        is_draft=False,
    )

    result = engine.inspections.complete(inspection.id, findings=[
        {'description': 'Seal leaking', 'status': 'failed', 'priority': 'high', 'action': 'Replace seal'},
        {'description': 'Coupling guard cracked', 'status': 'failed', 'priority': 'critical'},
        {'description': 'Paint worn', 'status': 'passed', 'priority': 'low'},
    ], now=START + timedelta(hours=3))

    assert result.health_score_after == 60
    assert inspection.status == InspectionStateMachine.COMPLETED
    assert pump.health_score == 60
    assert pump.last_inspected_at == START + timedelta(hours=3)

    assert result.backlogs.success_count == 2
    assert result.backlogs.failure_count == 0
    backlogs = Backlog.query.order_by(Backlog.id).all()
    assert [backlog.priority for backlog in backlogs] == ['P2', 'P1']
    assert backlogs[0].issue == 'Seal leaking | Action: Replace seal'
    for backlog in backlogs:
        assert backlog.source == 'Inspection Finding'
        assert backlog.auto_generated is True
        assert backlog.source_reference == {'type': 'Inspection', 'id': inspection.id}

    assert engine.events.sink.of_type('inspection.completed')
    assert len(engine.events.sink.of_type('backlog.created')) == 2


def test_observations_reduce_score_without_backlogs(engine, pump, inspection):
    start_journey(engine, inspection)
    engine.inspections.save_journey(
        inspection.id, checkpoint_results={'vibration': {'completed': True}, 'visual': {'completed': True}},
    )
    result = engine.inspections.complete(inspection.id, findings=[
        {'description': 'Minor dust', 'status': 'observation', 'priority': 'low'},
        {'description': 'Label faded', 'status': 'observation', 'priority': 'medium'},
    ])
    assert result.health_score_after == 76
    assert result.backlogs.success_count == 0


def test_cancel_from_draft_and_terminal_states(engine, inspection):
    start_journey(engine, inspection)
    engine.inspections.cancel(inspection.id, reason='Equipment offline', now=START + timedelta(hours=1))

    assert inspection.status == InspectionStateMachine.CANCELLED
    assert inspection.total_time_spent == pytest.approx(1.0)
    with pytest.raises(InvalidTransition):
        engine.inspections.save_journey(inspection.id)
    with pytest.raises(InvalidTransition):
        engine.inspections.cancel(inspection.id)


def test_state_machine_transitions():
    assert InspectionStateMachine.can_transition(InspectionStateMachine.SCHEDULED, InspectionStateMachine.DRAFT)
    assert not InspectionStateMachine.can_transition(InspectionStateMachine.SCHEDULED, InspectionStateMachine.COMPLETED)
    assert InspectionStateMachine.can_transition(InspectionStateMachine.DRAFT, InspectionStateMachine.CANCELLED)
    assert InspectionStateMachine.get_allowed_transitions(InspectionStateMachine.COMPLETED) == set()
