"""
Tests for the entity code counters
"""
import threading
from mms import db
from mms.data.core.sequences import (
    ALL_CODE_MANAGERS, BacklogCodeManager, EquipmentCodeManager, RuleCodeManager, WorkOrderCodeManager,
)


def test_code_formats(app):
    assert WorkOrderCodeManager.next_code() == 'WO-000001'
    assert RuleCodeManager.next_code() == 'RULE-0001'
    assert EquipmentCodeManager.next_code_for_type('sub-assembly') == 'SUB-0001'
    assert EquipmentCodeManager.next_code_for_type('component') == 'COM-0002'
    db.session.commit()


def test_every_counter_table_exists(app):
    for manager in ALL_CODE_MANAGERS:
        info = manager.get_sequence_info()
        assert info['current_value'] == 0
        assert info['table_name'].startswith('_sequence_')


def test_rolled_back_allocation_leaves_no_gap(app):
    assert BacklogCodeManager.next_code() == 'BL-000001'
    db.session.commit()

    assert BacklogCodeManager.next_code() == 'BL-000002'
    db.session.rollback()

    assert BacklogCodeManager.next_code() == 'BL-000002'
    db.session.commit()


def test_reset_sequence(app):
    WorkOrderCodeManager.reset_sequence(start_value=500)
    assert WorkOrderCodeManager.next_code() == 'WO-000500'
    db.session.commit()


def test_concurrent_allocation_is_unique_and_gap_free(app):
    codes = []
    errors = []
    codes_lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                for _ in range(5):
                    code = WorkOrderCodeManager.next_code()
                    db.session.commit()
                    with codes_lock:
                        codes.append(code)
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
    assert sorted(codes) == [f'WO-{value:06d}' for value in range(1, 21)]
