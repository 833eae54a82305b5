#!/usr/bin/env python3
"""
Database build for the maintenance lifecycle engine
Creates tables and code sequences and inserts the critical seed data.
"""

from pathlib import Path
import json
from mms import db
from mms.logger import get_logger

logger = get_logger("mms.build")

CRITICAL_DATA_FILE = Path(__file__).parent / 'data' / 'core' / 'build_data_critical.json'


def build_models():
    """Create every table and every code sequence counter"""
    from mms.data.core.sequences import ALL_CODE_MANAGERS

    db.create_all()
    logger.info("All database tables created")

    for manager in ALL_CODE_MANAGERS:
        manager.create_sequence_if_not_exists()
    logger.info(f"{len(ALL_CODE_MANAGERS)} code sequences ready")


def verify_critical_data():
    """
    Check that the system user and the initialization event exist

    Returns:
        bool: True if all critical data is present
    """
    from mms.data.core.user_info.user import User
    from mms.data.core.event_info.event import Event

    system_user = User.query.filter_by(username='system').first()
    if system_user is None:
        logger.warning("System user not found")
        return False

    system_event = Event.query.filter_by(
        event_type='System',
        description='System initialized with core data'
    ).first()
    if system_event is None:
        logger.warning("System initialization event not found")
        return False

    return True


def insert_critical_data():
    """
    Insert the data the engine needs to run (idempotent)

    Raises:
        FileNotFoundError: If the critical data file is missing
    """
    from mms.data.core.user_info.user import User
    from mms.data.core.event_info.event import Event

    if not CRITICAL_DATA_FILE.exists():
        error_msg = f"Critical data file not found: {CRITICAL_DATA_FILE}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    if verify_critical_data():
        logger.info("Critical data already present, skipping insertion")
        return

    with open(CRITICAL_DATA_FILE, 'r') as f:
        essential = json.load(f)['Essential']

    try:
        for user_data in essential.get('Users', []):
            if User.query.filter_by(username=user_data['username']).first() is None:
                User.create_from_dict(user_data, commit=False)
                logger.info(f"Inserted essential user: {user_data['username']}")
        db.session.flush()

        for event_data in essential.get('Events', []):
            exists = Event.query.filter_by(
                event_type=event_data['event_type'], description=event_data['description']
            ).first()
            if exists is None:
                Event.add_event(**event_data)

        db.session.commit()
        logger.info("Successfully inserted critical data")
    except Exception as e:
        db.session.rollback()
        logger.error(f"Critical data insertion failed: {e}")
        raise


def build_database(app=None):
    """
    Build orchestrator. Critical data is always verified and inserted.

    Args:
        app: Flask application (created from the environment if omitted)
    """
    if app is None:
        from mms import create_app
        app = create_app()

    with app.app_context():
        logger.info("Starting database build")
        build_models()
        insert_critical_data()
        logger.info("Database build completed successfully")
    return app
