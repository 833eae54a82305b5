"""
Pytest configuration and fixtures for the maintenance engine tests
"""
import pytest
from sqlalchemy import text
from mms import create_app
from mms import db as _db
from mms.build import build_database
from mms.business.core.events import RecordingEventSink
from mms.business.engine import MaintenanceEngine


@pytest.fixture(scope='function')
def app(tmp_path):
    """Flask application on a fresh file-backed SQLite database"""
    app = create_app({
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'TESTING': True,
    })
    build_database(app)

    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def recording_sink():
    return RecordingEventSink()


@pytest.fixture(scope='function')
def engine(app, recording_sink):
    return MaintenanceEngine(event_sink=recording_sink)


@pytest.fixture(scope='function')
def plant(engine):
    return engine.hierarchy.create({
        'name': 'Plant A', 'type': 'plant', 'level': 1, 'location': 'Site 1', 'criticality': 'A',
    })


@pytest.fixture(scope='function')
def pump(engine, plant):
    """Level 2 equipment under the plant"""
    return engine.hierarchy.create({
        'name': 'Feed Pump', 'type': 'equipment', 'level': 2, 'location': 'Site 1',
        'parent_id': plant.id, 'criticality': 'B',
    })


def set_health(equipment, value):
    """Force a health score, bypassing the baseline formula"""
    equipment.health_score = value
    _db.session.commit()
    return equipment


def bump_version(table, row_id):
    """Advance a row's version from a separate connection, as a competing writer would"""
    with _db.engine.begin() as connection:
        connection.execute(text(f"UPDATE {table} SET version = version + 1 WHERE id = :id"), {'id': row_id})
