"""
Tests for the equipment tree: level/parent consistency, derived children,
re-parenting and deletion guards
"""
import pytest
from mms.business.core.errors import HasActiveChildren, HierarchyViolation, NotFound, ValidationError
from mms.data.core.equipment_info.equipment import Equipment


def test_create_generates_code_from_type(engine, plant):
    assert plant.code == 'PLA-0001'
    assert plant.level == 1
    assert plant.parent_id is None
    assert 0 <= plant.health_score <= 100
    assert engine.events.sink.of_type('equipment.created')[0].entity_id == plant.id


def test_create_with_explicit_code_is_uppercased(engine):
    equipment = engine.hierarchy.create({
        'code': ' boiler-1 ', 'name': 'Boiler', 'type': 'plant', 'level': 1, 'location': 'North',
    })
    assert equipment.code == 'BOILER-1'

    with pytest.raises(ValidationError):
        engine.hierarchy.create({
            'code': 'BOILER-1', 'name': 'Boiler 2', 'type': 'plant', 'level': 1, 'location': 'North',
        })


def test_create_rejects_level_mismatch(engine, plant):
    with pytest.raises(HierarchyViolation):
        engine.hierarchy.create({
            'name': 'Gearbox', 'type': 'assembly', 'level': 3, 'location': 'Site 1', 'parent_id': plant.id,
        })
    assert Equipment.query.count() == 1


def test_create_rejects_missing_parent_and_root_with_parent(engine, plant):
    with pytest.raises(HierarchyViolation):
        engine.hierarchy.create({
            'name': 'Orphan', 'type': 'equipment', 'level': 2, 'location': 'Site 1', 'parent_id': 999,
        })
    with pytest.raises(HierarchyViolation):
        engine.hierarchy.create({
            'name': 'Second Plant', 'type': 'plant', 'level': 1, 'location': 'Site 2', 'parent_id': plant.id,
        })


def test_create_validates_fields(engine):
    with pytest.raises(ValidationError):
        engine.hierarchy.create({'name': 'No location', 'type': 'plant', 'level': 1})
    with pytest.raises(ValidationError):
        engine.hierarchy.create({'name': 'Bad', 'type': 'spaceship', 'level': 1, 'location': 'X'})
    with pytest.raises(ValidationError):
        engine.hierarchy.create({
            'name': 'Bad spec', 'type': 'plant', 'level': 1, 'location': 'X', 'specifications': {'colour': 'red'},
        })


def test_children_are_derived(engine, plant, pump):
    second = engine.hierarchy.create({
        'name': 'Spare Pump', 'type': 'equipment', 'level': 2, 'location': 'Site 1', 'parent_id': plant.id,
    })
    assert {child.id for child in plant.children} == {pump.id, second.id}

    engine.hierarchy.delete(second.id)
    assert [child.id for child in engine.hierarchy.children(plant.id)] == [pump.id]
    assert plant.to_dict()['children'] == [pump.id]


def test_set_parent_moves_between_parents(engine, plant, pump):
    other_plant = engine.hierarchy.create({
        'name': 'Plant B', 'type': 'plant', 'level': 1, 'location': 'Site 2',
    })
    plant_version = plant.version

    engine.hierarchy.set_parent(pump.id, other_plant.id)

    assert pump.parent_id == other_plant.id
    assert plant.children == []
    assert [child.id for child in other_plant.children] == [pump.id]
    assert plant.version > plant_version


def test_set_parent_rejects_wrong_level_and_cycles(engine, plant, pump):
    motor = engine.hierarchy.create({
        'name': 'Motor', 'type': 'assembly', 'level': 3, 'location': 'Site 1', 'parent_id': pump.id,
    })
    with pytest.raises(HierarchyViolation):
        engine.hierarchy.set_parent(motor.id, plant.id)
    with pytest.raises(HierarchyViolation):
        engine.hierarchy.validate_no_circular_reference(pump.id, motor.id)
    assert motor.parent_id == pump.id


def test_delete_with_active_children_is_refused(engine, plant, pump):
    with pytest.raises(HasActiveChildren) as excinfo:
        engine.hierarchy.delete(plant.id)
    assert excinfo.value.child_codes == [pump.code]
    assert plant.is_deleted is False

    engine.hierarchy.delete(pump.id)
    engine.hierarchy.delete(plant.id)
    with pytest.raises(NotFound):
        engine.hierarchy.get_equipment(plant.id)


def test_deleted_equipment_cannot_be_parent(engine, plant):
    other_plant = engine.hierarchy.create({'name': 'Plant C', 'type': 'plant', 'level': 1, 'location': 'Site 3'})
    engine.hierarchy.delete(other_plant.id)
    with pytest.raises(HierarchyViolation):
        engine.hierarchy.create({
            'name': 'Late Pump', 'type': 'equipment', 'level': 2, 'location': 'Site 3', 'parent_id': other_plant.id,
        })


def test_full_path_and_tree(engine, plant, pump):
    motor = engine.hierarchy.create({
        'name': 'Motor', 'type': 'assembly', 'level': 3, 'location': 'Site 1', 'parent_id': pump.id,
    })
    assert engine.hierarchy.full_path(motor.id) == 'Plant A > Feed Pump > Motor'
    assert [ancestor.id for ancestor in engine.hierarchy.parent_chain(motor.id)] == [pump.id, plant.id]

    tree = engine.hierarchy.hierarchy_tree()
    assert len(tree) == 1
    assert tree[0]['children'][0]['children'][0]['code'] == motor.code


def test_update_level_requires_consistent_parent(engine, plant, pump):
    with pytest.raises(HierarchyViolation):
        engine.equipment.update(pump.id, {'level': 3})

    updated = engine.equipment.update(pump.id, {'name': 'Main Feed Pump', 'criticality': 'A'})
    assert updated.name == 'Main Feed Pump'
    assert engine.events.sink.of_type('equipment.updated')


def test_update_level_and_parent_touches_both_parents(engine, plant, pump):
    motor = engine.hierarchy.create({
        'name': 'Motor', 'type': 'assembly', 'level': 3, 'location': 'Site 1', 'parent_id': pump.id,
    })
    plant_version, pump_version = plant.version, pump.version
    engine.events.sink.clear()

    moved = engine.equipment.update(motor.id, {'level': 2, 'parent_id': plant.id})

    assert moved.level == 2
    assert moved.parent_id == plant.id
    assert plant.version == plant_version + 1
    assert pump.version == pump_version + 1
    assert pump.children == []
    updated_ids = [event.entity_id for event in engine.events.sink.of_type('equipment.updated')]
    assert sorted(updated_ids) == sorted([motor.id, pump.id, plant.id])


def test_running_hours_never_decrease(engine, pump):
    engine.equipment.record_running_hours(pump.id, 1200)
    assert pump.running_hours == 1200
    with pytest.raises(ValidationError):
        engine.equipment.record_running_hours(pump.id, 1100)
