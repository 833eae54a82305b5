"""
Optimistic-version retry for writes to versioned rows (Equipment, rules).
"""

from typing import Callable, TypeVar
from sqlalchemy.orm.exc import StaleDataError
from mms import db
from mms.business.core.errors import ConcurrentModification
from mms.business.core.settings import engine_setting
from mms.logger import get_logger

logger = get_logger("mms.business.core.versioning")

T = TypeVar('T')


def commit_with_version_retry(operation: Callable[[], T], description: str, attempts: int = None) -> T:
    """
    Run `operation` and commit, re-running it after a version conflict.

    The operation must load the rows it mutates itself, so a retry sees the
    state written by the competing transaction and re-validates against it.

    Args:
        operation: Callable that applies the change and returns a result
        description: Text used in log messages
        attempts: Maximum attempts (defaults to MMS_EQUIPMENT_RETRY_ATTEMPTS)

    Returns:
        Whatever `operation` returned on the attempt that committed

    Raises:
        ConcurrentModification: If every attempt hit a version conflict
    """
    if attempts is None:
        attempts = engine_setting('MMS_EQUIPMENT_RETRY_ATTEMPTS')

    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.session.commit()
            return result
        except StaleDataError:
            db.session.rollback()
            logger.warning(f"Version conflict on {description} (attempt {attempt}/{attempts})")
        except Exception:
            db.session.rollback()
            raise

    raise ConcurrentModification(f"{description} failed after {attempts} attempts due to concurrent updates")
