"""
Tests for filter-dictionary queries over engine entities
"""
import pytest
from mms.business.core.errors import NotFound, ValidationError
from mms.data.core.equipment_info.equipment import Equipment
from mms.data.maintenance.work_order import WorkOrderMaterial
from mms.services.core.entity_repository import EntityRepository


@pytest.fixture
def repository(app):
    return EntityRepository(Equipment)


@pytest.fixture
def motors(engine, pump):
    created = []
    for index, name in enumerate(('Motor A', 'Motor B', 'Motor C')):
        created.append(engine.hierarchy.create({
            'name': name, 'type': 'assembly', 'level': 3, 'location': 'Site 1',
            'parent_id': pump.id, 'criticality': 'ABC'[index],
        }))
    return created


def test_find_with_equality_and_in_filters(repository, plant, pump, motors):
    assert [item.id for item in repository.find({'level': 3})] == [motor.id for motor in motors]
    assert [item.name for item in repository.find({'criticality': ['A', 'C']}, order_by=['-name'])] == [
        'Plant A', 'Motor C', 'Motor A',
    ]
    assert repository.find({'parent_id': None}) == [plant]


def test_soft_deleted_rows_are_hidden(engine, repository, motors):
    engine.hierarchy.delete(motors[0].id)

    assert len(repository.find({'level': 3})) == 2
    assert len(repository.find({'level': 3}, include_deleted=True)) == 3
    assert repository.find_by_id(motors[0].id) is None
    with pytest.raises(NotFound):
        repository.get(motors[0].id)
    assert repository.get(motors[0].id, include_deleted=True).is_deleted is True


def test_unknown_fields_are_rejected(repository):
    with pytest.raises(ValidationError):
        repository.find({'colour': 'red'})
    with pytest.raises(ValidationError):
        repository.find(order_by=['colour'])


def test_find_by_code_and_count(repository, pump, motors):
    assert repository.find_by_code(pump.code) == pump
    assert repository.count_matching({'parent_id': pump.id}) == 3
    with pytest.raises(ValidationError):
        EntityRepository(WorkOrderMaterial).find_by_code('WO-000001')


def test_paginate(repository, motors):
    page = repository.paginate({'level': 3}, page=2, per_page=2, order_by=['name'])
    assert page.total == 3
    assert [item.name for item in page.items] == ['Motor C']
    assert page.has_prev and not page.has_next
