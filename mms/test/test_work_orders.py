"""
Tests for the work order lifecycle and its writebacks to backlog and equipment
"""
from datetime import datetime, timedelta
import pytest
from mms.business.core.errors import InvalidTransition, ValidationError
from mms.business.maintenance.work_order_context import is_overdue, priority_score
from mms.business.maintenance.work_order_state_machine import WorkOrderStateMachine

DONE_AT = datetime(2024, 5, 10, 16, 0)


@pytest.fixture
def work_order_with_backlog(engine, pump):
    backlog = engine.backlogs.create_backlog(pump.id, 'Bearing noise', 'Mechanical', priority='P1', estimated_hours=3)
    work_order = engine.work_order_generator.generate_from_backlogs([backlog.id]).succeeded[0]
    return work_order, backlog


def test_state_machine():
    assert WorkOrderStateMachine.can_transition('Planned', 'InProgress')
    assert WorkOrderStateMachine.can_transition('OnHold', 'Scheduled')
    assert not WorkOrderStateMachine.can_transition('Planned', 'Completed')
    assert not WorkOrderStateMachine.can_transition('Completed', 'InProgress')
    with pytest.raises(InvalidTransition):
        WorkOrderStateMachine.validate_transition('Planned', 'Finished')


def test_start_syncs_backlog(engine, work_order_with_backlog):
    work_order, backlog = work_order_with_backlog
    engine.work_orders.start(work_order.id, now=DONE_AT - timedelta(hours=4))
    engine.work_orders.set_progress(work_order.id, 40)

    assert work_order.status == 'InProgress'
    assert work_order.start_date == DONE_AT - timedelta(hours=4)
    assert backlog.status == 'InProgress'
    assert backlog.progress == 40


def test_completion_costs_and_writebacks(engine, pump, work_order_with_backlog):
    work_order, backlog = work_order_with_backlog
    engine.equipment.record_running_hours(pump.id, 1800)

    engine.work_orders.add_material(work_order.id, 'Bearing 6205', 2, 35.0)
    engine.work_orders.add_labor(work_order.id, hours=3, rate=80.0, technician_name='Sam')
    engine.work_orders.start(work_order.id)
    engine.work_orders.complete(
        work_order.id, actual_hours=3,
        report={'findings': 'Outer race pitted', 'next_actions': 'Check alignment'},
        now=DONE_AT,
    )

    assert work_order.status == 'Completed'
    assert work_order.progress == 100
    assert work_order.actual_cost == 310.0
    assert work_order.completion_date == DONE_AT
    assert work_order.report_findings == 'Outer race pitted'
    assert backlog.status == 'Completed'
    assert pump.last_maintenance == DONE_AT
    assert pump.last_maintenance_hours == 1800
    assert engine.events.sink.of_type('equipment.updated')


def test_completion_only_from_in_progress(engine, work_order_with_backlog):
    work_order, _ = work_order_with_backlog
    with pytest.raises(InvalidTransition):
        engine.work_orders.complete(work_order.id)
    assert work_order.status == 'Planned'


def test_hold_does_not_move_backlog_backwards(engine, work_order_with_backlog):
    work_order, backlog = work_order_with_backlog
    engine.work_orders.start(work_order.id)
    engine.work_orders.transition(work_order.id, 'OnHold')
    assert backlog.status == 'InProgress'


def test_cancel_releases_backlog(engine, work_order_with_backlog):
    work_order, backlog = work_order_with_backlog
    engine.work_orders.cancel(work_order.id)

    assert work_order.status == 'Cancelled'
    assert backlog.status == 'Open'
    assert backlog.work_order_id is None
    assert [item.id for item in engine.work_order_generator.eligible_backlogs()] == [backlog.id]

    with pytest.raises(InvalidTransition):
        engine.work_orders.start(work_order.id)
    with pytest.raises(InvalidTransition):
        engine.work_orders.add_material(work_order.id, 'Grease', 1, 5.0)


def test_delete_releases_backlog(engine, work_order_with_backlog):
    work_order, backlog = work_order_with_backlog
    engine.work_orders.delete(work_order.id)

    assert work_order.is_deleted is True
    assert backlog.status == 'Open'
    assert backlog.work_order_id is None
    assert engine.events.sink.of_type('workorder.deleted')[0].payload == {'id': work_order.id}


def test_delete_keeps_completed_backlog_closed(engine, work_order_with_backlog):
    work_order, backlog = work_order_with_backlog
    engine.work_orders.start(work_order.id)
    engine.work_orders.complete(work_order.id, now=DONE_AT)

    engine.work_orders.delete(work_order.id)

    assert work_order.is_deleted is True
    assert backlog.status == 'Completed'
    assert backlog.work_order_id == work_order.id
    assert engine.work_order_generator.eligible_backlogs() == []


def test_validation_of_cost_lines(engine, work_order_with_backlog):
    work_order, _ = work_order_with_backlog
    with pytest.raises(ValidationError):
        engine.work_orders.add_material(work_order.id, 'Grease', 0, 5.0)
    with pytest.raises(ValidationError):
        engine.work_orders.add_labor(work_order.id, hours=-1, rate=50.0)
    with pytest.raises(ValidationError):
        engine.work_orders.update(work_order.id, {'status': 'Completed'})


def test_priority_score_and_overdue(engine, work_order_with_backlog):
    work_order, _ = work_order_with_backlog
    now = datetime.utcnow()

    work_order.scheduled_date = now + timedelta(days=30)
    assert not is_overdue(work_order, now)
    assert priority_score(work_order, now) == 4 * 2

    work_order.scheduled_date = now + timedelta(days=3)
    assert priority_score(work_order, now) == 4 * 2 * 1.5

    work_order.scheduled_date = now - timedelta(days=1)
    assert is_overdue(work_order, now)
    assert priority_score(work_order, now) == 4 * 2 * 2
