"""
Virtual Sequence Generator Base Class
Atomic counters backing the human-readable entity codes (BL-000001, WO-000001, ...)
"""

from mms import db
from sqlalchemy import text
import threading
from abc import ABC, abstractmethod


class VirtualSequenceGenerator(ABC):
    """
    Abstract base class for sequence generators.

    Each sequence is a single-row counter table. The increment is an
    in-place UPDATE executed in the caller's transaction, so the database
    write lock serializes concurrent creators and a rolled back creation
    also rolls back its increment (codes stay gap-free).
    """

    _lock = threading.Lock()

    code_prefix = None
    code_width = 6

    @classmethod
    @abstractmethod
    def get_sequence_table_name(cls):
        """
        Return the table name for the sequence counter
        Must be implemented by subclasses
        """
        pass

    @classmethod
    def get_next_id(cls):
        """
        Increment the counter and return the new value.

        Returns:
            int: next value of the sequence
        """
        with cls._lock:
            result = db.session.execute(text(f"UPDATE {cls.get_sequence_table_name()} SET current_value = current_value + 1"))
            if result.rowcount == 0:
                cls._insert_counter_row()
                db.session.execute(text(f"UPDATE {cls.get_sequence_table_name()} SET current_value = current_value + 1"))
            value = db.session.execute(text(f"SELECT current_value FROM {cls.get_sequence_table_name()}"))
            return value.scalar()

    @classmethod
    def format_code(cls, value):
        return f"{cls.code_prefix}-{value:0{cls.code_width}d}"

    @classmethod
    def next_code(cls):
        """
        Allocate the next entity code, e.g. "WO-000042".

        Returns:
            str: formatted code
        """
        return cls.format_code(cls.get_next_id())

    @classmethod
    def _insert_counter_row(cls):
        db.session.execute(text(f"INSERT INTO {cls.get_sequence_table_name()} (id, current_value) VALUES (1, 0)"))

    @classmethod
    def create_sequence_if_not_exists(cls):
        """
        Create the counter table and its single row if they don't exist
        """
        try:
            db.session.execute(text(f"""
                CREATE TABLE IF NOT EXISTS {cls.get_sequence_table_name()} (
                    id INTEGER PRIMARY KEY,
                    current_value INTEGER NOT NULL DEFAULT 0
                )
            """))

            result = db.session.execute(text(f"SELECT COUNT(*) FROM {cls.get_sequence_table_name()}"))
            if result.scalar() == 0:
                cls._insert_counter_row()

            db.session.commit()

        except Exception:
            db.session.rollback()
            raise

    @classmethod
    def reset_sequence(cls, start_value=1):
        """
        Reset the sequence so the next allocated value is start_value
        """
        with cls._lock:
            db.session.execute(
                text(f"UPDATE {cls.get_sequence_table_name()} SET current_value = :value"),
                {'value': start_value - 1}
            )
            db.session.commit()

    @classmethod
    def get_current_sequence_value(cls):
        result = db.session.execute(text(f"SELECT current_value FROM {cls.get_sequence_table_name()}"))
        return result.scalar()

    @classmethod
    def get_sequence_info(cls):
        """
        Get information about the sequence
        """
        return {
            'table_name': cls.get_sequence_table_name(),
            'prefix': cls.code_prefix,
            'current_value': cls.get_current_sequence_value()
        }
