from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import os
from mms.logger import get_logger

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes', 'on')


def create_app(config_overrides=None):
    """
    Application factory for the maintenance lifecycle engine.

    Args:
        config_overrides (dict, optional): Values applied on top of the
            environment-driven configuration, before extensions are bound.

    Returns:
        Flask: configured application with models registered
    """
    from pathlib import Path

    app = Flask(__name__)

    logger = get_logger("mms")
    logger.info("Initializing maintenance engine application")

    # Prefer an explicit DATABASE_URL env var; otherwise keep the SQLite
    # database in the project's `instance/` directory.
    base_dir = Path(__file__).parent.parent
    db_env = os.environ.get('DATABASE_URL')
    if db_env:
        app.config['SQLALCHEMY_DATABASE_URI'] = db_env
    else:
        instance_dir = base_dir / 'instance'
        instance_dir.mkdir(parents=True, exist_ok=True)
        default_db_path = instance_dir / 'mms.db'
        app.config['SQLALCHEMY_DATABASE_URI'] = f"sqlite:///{str(default_db_path.resolve())}"

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Engine tunables
    app.config['MMS_DEFAULT_LABOR_RATE'] = float(os.environ.get('MMS_DEFAULT_LABOR_RATE', '500'))
    app.config['MMS_HEALTH_COST_THRESHOLD'] = float(os.environ.get('MMS_HEALTH_COST_THRESHOLD', '100000'))
    app.config['MMS_HEALTH_INSPECTION_WINDOW_DAYS'] = int(os.environ.get('MMS_HEALTH_INSPECTION_WINDOW_DAYS', '90'))
    app.config['MMS_POLL_INTERVAL_SECONDS'] = int(os.environ.get('MMS_POLL_INTERVAL_SECONDS', '300'))
    app.config['MMS_EQUIPMENT_RETRY_ATTEMPTS'] = int(os.environ.get('MMS_EQUIPMENT_RETRY_ATTEMPTS', '3'))
    app.config['MMS_PERSIST_EVENTS'] = _env_flag('MMS_PERSIST_EVENTS', 'False')

    if config_overrides:
        app.config.update(config_overrides)

    logger.debug(f"Database configured: {app.config['SQLALCHEMY_DATABASE_URI'].split(':', 1)[0]}")

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)

    logger.debug("Extensions initialized")

    # Import models to ensure they're registered with SQLAlchemy
    from mms.data.core.user_info.user import User
    from mms.data.core.event_info.event import Event
    from mms.data.core.equipment_info.equipment import Equipment
    from mms.data.inspections.inspection_template import InspectionTemplate, TemplateCheckpoint
    from mms.data.inspections.inspection import Inspection, InspectionFinding, SafetyAcknowledgement, CheckpointResult
    from mms.data.maintenance.backlog import Backlog
    from mms.data.maintenance.work_order import WorkOrder, WorkOrderMaterial, WorkOrderLabor
    from mms.data.maintenance.pm_schedule import PMSchedule, PMChecklistItem, PMCompletionRecord
    from mms.data.maintenance.auto_work_order_rule import AutoWorkOrderRule, RuleTemplateMaterial

    logger.debug("Models imported and registered")

    logger.info("Maintenance engine application initialization complete")

    return app
