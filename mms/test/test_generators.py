"""
Tests for the batch generators: finding -> backlog and backlog -> work order,
including per-item fault isolation
"""
import threading
from types import SimpleNamespace
import pytest
from mms import db
from mms.business.core.errors import ValidationError
from mms.business.engine import MaintenanceEngine
from mms.business.maintenance.finding_backlog_generator import backlog_priority_for, finding_qualifies
from mms.business.maintenance.work_order_generator import WorkOrderGenerator, estimate_cost
from mms.data.maintenance.backlog import Backlog
from mms.data.maintenance.work_order import WorkOrder


def test_finding_qualification_and_priority():
    assert finding_qualifies('failed', 'low')
    assert finding_qualifies('passed', 'high')
    assert finding_qualifies('observation', 'critical')
    assert not finding_qualifies('observation', 'medium')
    assert not finding_qualifies('passed', 'low')

    assert backlog_priority_for('critical') == 'P1'
    assert backlog_priority_for('high') == 'P2'
    assert backlog_priority_for('low') == 'P3'


def test_estimate_cost_defaults_to_unit_rate(app):
    assert estimate_cost(1234.0, 10) == 1234.0
    assert estimate_cost(None, 4) == 2000.0
    assert estimate_cost(None, None) == 0.0
    assert estimate_cost(None, 2, labor_rate=100) == 200.0


def test_finding_generator_isolates_failures(engine, pump):
    inspection = SimpleNamespace(
        id=42, code='INSP-TEST', equipment_id=pump.id, completed_by_id=None, assigned_to_id=None,
        findings=[
            SimpleNamespace(id=1, description='Leak', status='failed', priority='high', action=None),
            SimpleNamespace(id=2, description=None, status='failed', priority='critical', action=None),
            SimpleNamespace(id=3, description='Loose bolt', status='observation', priority='critical', action='Torque'),
        ],
    )

    result = engine.finding_backlogs.generate_for_inspection(inspection)

    assert result.success_count == 2
    assert result.failure_count == 1
    assert result.failed[0].reference == 2
    assert [backlog.issue for backlog in Backlog.query.order_by(Backlog.id).all()] == [
        'Leak', 'Loose bolt | Action: Torque',
    ]


def test_backlog_to_work_order(engine, pump):
    backlog = engine.backlogs.create_backlog(pump.id, 'Replace impeller', 'Mechanical', priority='P2', estimated_hours=6)

    result = engine.work_order_generator.generate_from_backlogs([backlog.id])

    assert result.success_count == 1
    work_order = result.succeeded[0]
    assert work_order.code == 'WO-000001'
    assert work_order.type == 'Corrective'
    assert work_order.wo_type == 'User Generated'
    assert work_order.priority == 'P2'
    assert work_order.equipment_id == pump.id
    assert work_order.estimated_cost == 3000.0
    assert work_order.title == 'Mechanical Work: Replace impeller...'
    assert backlog.work_order_id == work_order.id
    assert backlog.status == 'Planned'
    assert engine.events.sink.of_type('workorder.created')


def test_concurrent_promotion_creates_one_work_order(app, engine, pump, monkeypatch):
    backlog_id = engine.backlogs.create_backlog(pump.id, 'Seal leak', 'Mechanical').id
    outcomes = []
    errors = []
    outcomes_lock = threading.Lock()
    # Every worker has seen the backlog as eligible before any of them writes
    barrier = threading.Barrier(4, timeout=10)
    original = WorkOrderGenerator._build_from_backlog

    def build_together(self, *args, **kwargs):
        barrier.wait()
        return original(self, *args, **kwargs)

    monkeypatch.setattr(WorkOrderGenerator, '_build_from_backlog', build_together)

    def worker():
        with app.app_context():
            try:
                result = MaintenanceEngine().work_order_generator.generate_from_backlogs([backlog_id])
                with outcomes_lock:
                    outcomes.append((result.success_count, len(result.skipped), result.failure_count))
            except Exception as e:
                errors.append(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sum(outcome[0] for outcome in outcomes) == 1
    assert sum(outcome[1] for outcome in outcomes) == 3
    assert sum(outcome[2] for outcome in outcomes) == 0

    db.session.expire_all()
    work_order = WorkOrder.query.one()
    assert work_order.code == 'WO-000001'
    backlog = db.session.get(Backlog, backlog_id)
    assert backlog.work_order_id == work_order.id
    assert backlog.status == 'Planned'


def test_ineligible_backlogs_are_never_selected(engine, pump):
    completed = engine.backlogs.create_backlog(pump.id, 'Done already', 'Electrical')
    engine.backlogs.admin_set_status(completed.id, 'Completed')
    linked = engine.backlogs.create_backlog(pump.id, 'Linked already', 'Electrical')
    engine.work_order_generator.generate_from_backlogs([linked.id])
    fresh = engine.backlogs.create_backlog(pump.id, 'Fresh issue', 'Safety', estimated_cost=750.0)

    assert [backlog.id for backlog in engine.work_order_generator.eligible_backlogs()] == [fresh.id]

    result = engine.work_order_generator.generate_from_backlogs([completed.id, linked.id, fresh.id, 999])
    assert result.success_count == 1
    assert result.succeeded[0].estimated_cost == 750.0
    assert sorted(result.skipped) == sorted([completed.id, linked.id])
    assert result.failed[0].reference == 999
    assert WorkOrder.query.count() == 2


def test_generate_all_eligible(engine, pump):
    for issue in ('A', 'B', 'C'):
        engine.backlogs.create_backlog(pump.id, f'Issue {issue}', 'Operational')
    result = engine.work_order_generator.generate_all_eligible(equipment_id=pump.id)
    assert result.success_count == 3
    assert engine.work_order_generator.eligible_backlogs() == []


def test_bulk_assign_isolates_failures(engine, pump):
    first = engine.backlogs.create_backlog(pump.id, 'First', 'Mechanical')
    second = engine.backlogs.create_backlog(pump.id, 'Second', 'Mechanical')

    result = engine.backlogs.bulk_assign([first.id, 12345, second.id], priority='P1', category='Safety')

    assert result.success_count == 2
    assert result.failure_count == 1
    assert first.priority == 'P1' and second.category == 'Safety'
    assert len(engine.events.sink.of_type('backlog.bulkUpdated')) == 2

    with pytest.raises(ValidationError):
        engine.backlogs.bulk_assign([first.id], priority='P9')


def test_backlog_status_only_moves_forward(engine, pump):
    backlog = engine.backlogs.create_backlog(pump.id, 'Check wiring', 'Electrical')
    engine.backlogs.validate(backlog.id)
    assert backlog.status == 'Validated'
    with pytest.raises(ValidationError):
        engine.backlogs.validate(backlog.id)

    engine.work_order_generator.generate_from_backlogs([backlog.id])
    engine.backlogs.admin_set_status(backlog.id, 'Open')
    db.session.refresh(backlog)
    assert backlog.status == 'Open'
    assert backlog.work_order_id is None
