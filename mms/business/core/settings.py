"""
Engine tunables read from the Flask app config, with defaults for use
outside an application context.
"""

from flask import current_app, has_app_context

DEFAULTS = {
    'MMS_DEFAULT_LABOR_RATE': 500.0,
    'MMS_HEALTH_COST_THRESHOLD': 100000.0,
    'MMS_HEALTH_INSPECTION_WINDOW_DAYS': 90,
    'MMS_POLL_INTERVAL_SECONDS': 300,
    'MMS_EQUIPMENT_RETRY_ATTEMPTS': 3,
}


def engine_setting(key):
    if has_app_context():
        return current_app.config.get(key, DEFAULTS[key])
    return DEFAULTS[key]
