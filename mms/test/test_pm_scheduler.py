"""
Tests for PM due-date arithmetic, overdue derivation and completion history
"""
from datetime import datetime, timedelta
import pytest
from mms.business.core.errors import ValidationError
from mms.business.maintenance.planning.frequency_behaviors import add_months, select_frequency_behavior
from mms.business.maintenance.planning.pm_scheduler import calculate_next_due, is_overdue
from mms.data.maintenance.pm_schedule import PMSchedule

NOW = datetime(2024, 3, 15, 9, 0)


def test_month_arithmetic_clamps_to_month_end():
    assert calculate_next_due('Monthly', datetime(2024, 1, 31)) == datetime(2024, 2, 29)
    assert calculate_next_due('Monthly', datetime(2023, 1, 31)) == datetime(2023, 2, 28)
    assert calculate_next_due('Quarterly', datetime(2024, 11, 30)) == datetime(2025, 2, 28)
    assert calculate_next_due('Annually', datetime(2024, 2, 29)) == datetime(2025, 2, 28)
    assert add_months(datetime(2024, 12, 15), 6) == datetime(2025, 6, 15)


def test_day_frequencies_and_never_performed():
    assert calculate_next_due('Daily', datetime(2024, 2, 28)) == datetime(2024, 2, 29)
    assert calculate_next_due('Weekly', datetime(2024, 12, 28)) == datetime(2025, 1, 4)
    assert calculate_next_due('Semi-Annually', None, now=NOW) == datetime(2024, 9, 15, 9, 0)
    with pytest.raises(ValidationError):
        calculate_next_due('Fortnightly', NOW)


def test_frequency_descriptions():
    assert select_frequency_behavior('Weekly').describe() == 'every 7 day(s)'
    assert select_frequency_behavior('Quarterly').describe() == 'every 3 month(s)'
    assert select_frequency_behavior('Fortnightly') is None


def test_create_calculates_next_due(engine, pump):
    schedule = engine.pm.create_schedule(
        pump.id, 'Lubrication', 'Monthly', checklist=['Grease bearings', 'Check oil level'],
        last_performed=datetime(2024, 1, 31), now=datetime(2024, 2, 1),
    )
    assert schedule.code == 'PM-000001'
    assert schedule.next_due == datetime(2024, 2, 29)
    assert schedule.status == 'Scheduled'


def test_start_keeps_past_due_schedule_overdue(engine, pump):
    late = engine.pm.create_schedule(pump.id, 'Belt check', 'Weekly', next_due=NOW - timedelta(days=3), now=NOW)
    on_time = engine.pm.create_schedule(pump.id, 'Oil sample', 'Monthly', next_due=NOW + timedelta(days=5), now=NOW)

    engine.pm.start(late.id, now=NOW)
    engine.pm.start(on_time.id, now=NOW)

    assert late.status == 'Overdue'
    assert on_time.status == 'InProgress'
    assert [item.item for item in schedule.checklist] == ['Grease bearings', 'Check oil level']
    assert engine.events.sink.of_type('pm.created')


def test_past_due_schedule_is_overdue_until_completed(engine, pump):
    schedule = engine.pm.create_schedule(
        pump.id, 'Filter change', 'Weekly', next_due=NOW - timedelta(days=2),
        estimated_cost=400.0, now=NOW,
    )
    assert is_overdue(schedule, NOW)
    assert schedule.status == 'Overdue'

    engine.pm.complete(schedule.id, findings='Filter clogged', now=NOW)

    assert not is_overdue(schedule, NOW)
    assert schedule.status == 'Scheduled'
    assert schedule.last_performed == NOW
    assert schedule.next_due == NOW + timedelta(days=7)


def test_completion_history_and_cost_accumulation(engine, pump):
    pump.maintenance_cost = 1000.0
    schedule = engine.pm.create_schedule(pump.id, 'Inspection', 'Monthly', estimated_cost=250.0, now=NOW)

    engine.pm.complete(schedule.id, actual_cost=300.0, next_actions='Order gasket', now=NOW)
    engine.pm.complete(schedule.id, now=NOW + timedelta(days=31))

    history = schedule.completion_history
    assert len(history) == 2
    assert [record.actual_cost for record in history] == [300.0, 250.0]
    assert history[0].next_actions == 'Order gasket'
    assert pump.maintenance_cost == 1550.0
    assert pump.last_maintenance == NOW + timedelta(days=31)
    assert len(engine.events.sink.of_type('pm.completed')) == 2


def test_refresh_overdue_marks_only_past_due(engine, pump):
    late = engine.pm.create_schedule(pump.id, 'Late', 'Daily', next_due=NOW + timedelta(hours=1), now=NOW)
    on_time = engine.pm.create_schedule(pump.id, 'On time', 'Monthly', next_due=NOW + timedelta(days=10), now=NOW)

    result = engine.pm.refresh_overdue(now=NOW + timedelta(days=1))

    assert [schedule.id for schedule in result.succeeded] == [late.id]
    assert late.status == 'Overdue'
    assert on_time.status == 'Scheduled'

    again = engine.pm.refresh_overdue(now=NOW + timedelta(days=1))
    assert again.success_count == 0


def test_update_recalculates_next_due(engine, pump):
    schedule = engine.pm.create_schedule(pump.id, 'Belt check', 'Monthly', last_performed=NOW, now=NOW)
    engine.pm.update_schedule(schedule.id, {'frequency': 'Quarterly'}, now=NOW)
    assert schedule.next_due == datetime(2024, 6, 15, 9, 0)

    with pytest.raises(ValidationError):
        engine.pm.update_schedule(schedule.id, {'frequency': 'Hourly'})
    with pytest.raises(ValidationError):
        engine.pm.update_schedule(schedule.id, {'code': 'PM-999999'})


def test_due_soon_uses_notification_window(engine, pump):
    soon = engine.pm.create_schedule(pump.id, 'Soon', 'Monthly', next_due=NOW + timedelta(days=5), now=NOW)
    engine.pm.create_schedule(pump.id, 'Later', 'Monthly', next_due=NOW + timedelta(days=20), now=NOW)
    engine.pm.create_schedule(
        pump.id, 'Short notice', 'Monthly', next_due=NOW + timedelta(days=3), notify_days_before=1, now=NOW,
    )
    assert [schedule.id for schedule in engine.pm.due_soon(now=NOW)] == [soon.id]


def test_auto_generate_defaults(engine, plant, pump):
    second = engine.hierarchy.create({
        'name': 'Booster Pump', 'type': 'equipment', 'level': 2, 'location': 'Site 1', 'parent_id': plant.id,
    })
    engine.pm.create_schedule(second.id, 'Existing', 'Monthly', now=NOW)

    result = engine.pm.auto_generate('equipment', 'Monthly', now=NOW)

    assert result.success_count == 1
    assert result.skipped == [second.id]
    schedule = result.succeeded[0]
    assert schedule.equipment_id == pump.id
    assert schedule.title == 'Monthly Maintenance - Feed Pump'
    assert schedule.estimated_cost == 2500.0
    assert schedule.estimated_duration == 2.0
    assert len(schedule.checklist) == 5
    assert schedule.next_due == datetime(2024, 4, 15, 9, 0)
    assert PMSchedule.query.count() == 2
