"""
Tests for the baseline health formula and the inspection override
"""
from datetime import datetime, timedelta
from types import SimpleNamespace
from mms.business.equipment import health_score

NOW = datetime(2024, 6, 1)


def make_equipment(**overrides):
    values = {
        'running_hours': 0.0,
        'next_maintenance_hours': 1000.0,
        'commission_date': None,
        'maintenance_cost': 0.0,
        'last_inspected_at': None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_new_equipment_scores_full():
    assert health_score.score(make_equipment(), now=NOW) == 100


def test_overdue_running_hours_penalty_is_capped():
    assert health_score.score(make_equipment(running_hours=1150), now=NOW) == 85
    assert health_score.score(make_equipment(running_hours=5000), now=NOW) == 70


def test_age_penalty_is_capped():
    five_years = make_equipment(commission_date=NOW - timedelta(days=365 * 5 + 2))
    assert health_score.score(five_years, now=NOW) == 90
    thirty_years = make_equipment(commission_date=NOW - timedelta(days=365 * 30 + 8))
    assert health_score.score(thirty_years, now=NOW) == 80


def test_cost_penalty_above_threshold():
    assert health_score.score(make_equipment(maintenance_cost=100000), now=NOW) == 100
    assert health_score.score(make_equipment(maintenance_cost=100001), now=NOW) == 90
    assert health_score.score(make_equipment(maintenance_cost=600), now=NOW, cost_threshold=500) == 90


def test_all_penalties_combined_stay_in_range():
    worst = make_equipment(
        running_hours=99999,
        commission_date=NOW - timedelta(days=365 * 50),
        maintenance_cost=10 ** 9,
    )
    result = health_score.breakdown(worst, now=NOW)
    assert result.overdue_penalty == 30
    assert result.age_penalty == 20
    assert result.cost_penalty == 10
    assert result.score == 40
    assert 0 <= result.score <= 100


def test_inspection_score_floor_and_deductions():
    assert health_score.inspection_score(80, 1, 0) == 70
    assert health_score.inspection_score(80, 2, 0) == 60
    assert health_score.inspection_score(80, 0, 3) == 74
    assert health_score.inspection_score(55, 4, 2) == 50


def test_recent_inspection_window():
    equipment = make_equipment(last_inspected_at=NOW - timedelta(days=30))
    assert health_score.has_recent_inspection(equipment, now=NOW)
    assert not health_score.has_recent_inspection(equipment, now=NOW, window_days=10)
    assert not health_score.has_recent_inspection(make_equipment(), now=NOW)


def test_baseline_refresh_skips_recent_inspection(engine, pump):
    engine.equipment.record_running_hours(pump.id, 1200)
    assert pump.health_score == 80

    engine.equipment.apply_inspection_score(pump, 95, datetime.utcnow())
    engine.equipment.refresh_health_score(pump.id)
    assert pump.health_score == 95
