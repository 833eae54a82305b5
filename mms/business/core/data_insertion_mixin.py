"""
Generic data insertion mixin for SQLAlchemy models
Provides from_dict and to_dict so entities cross the engine boundary as
structured records (event payloads, repository results, seed data).
"""

from datetime import datetime, date
from sqlalchemy import inspect
from mms import db
from mms.logger import get_logger

logger = get_logger("mms.business.core.data_insertion")


class DataInsertionMixin:
    """
    Mixin that provides generic record conversion for SQLAlchemy models

    This mixin adds:
    - from_dict(): Create model instance from dictionary
    - to_dict(): Convert model instance to dictionary
    - create_from_dict(): Create and save model instance from dictionary
    """

    # Relationship collections serialized by to_dict(include_children=True)
    _serialized_collections = ()

    @classmethod
    def from_dict(cls, data_dict, user_id=None, skip_fields=None):
        """
        Create a model instance from a dictionary

        Args:
            data_dict (dict): Dictionary containing model data
            user_id (int, optional): User ID for audit fields
            skip_fields (list, optional): Fields to skip during creation

        Returns:
            Model instance (not saved to database)
        """
        if skip_fields is None:
            skip_fields = []

        mapper = inspect(cls)
        columns = {c.key for c in mapper.columns}

        filtered_data = {}
        for key, value in data_dict.items():
            if key not in columns or key in skip_fields:
                continue
            if key in ['created_at', 'updated_at'] and value is None:
                continue
            filtered_data[key] = value

        instance = cls(**filtered_data)

        if user_id is not None:
            if hasattr(instance, 'created_by_id') and not instance.created_by_id:
                instance.created_by_id = user_id
            if hasattr(instance, 'updated_by_id'):
                instance.updated_by_id = user_id

        return instance

    def to_dict(self, include_children=True, include_audit_fields=True):
        """
        Convert model instance to dictionary

        Args:
            include_children (bool): Whether to include owned child rows
                (findings, materials, checklist, ...)
            include_audit_fields (bool): Whether to include audit fields

        Returns:
            dict: Dictionary representation of the model
        """
        result = {}
        mapper = inspect(self.__class__)

        for column in mapper.columns:
            if not include_audit_fields and column.key in ['created_at', 'updated_at', 'created_by_id', 'updated_by_id']:
                continue
            value = getattr(self, column.key)
            if isinstance(value, (datetime, date)):
                result[column.key] = value.isoformat()
            else:
                result[column.key] = value

        if include_children:
            for collection_name in self._serialized_collections:
                items = getattr(self, collection_name)
                result[collection_name] = [item.to_dict(include_audit_fields=False) for item in items]

        return result

    @classmethod
    def create_from_dict(cls, data_dict, user_id=None, skip_fields=None, commit=True):
        """
        Create and save a model instance from dictionary

        Args:
            data_dict (dict): Dictionary containing model data
            user_id (int, optional): User ID for audit fields
            skip_fields (list, optional): Fields to skip during creation
            commit (bool): Whether to commit the transaction

        Returns:
            Model instance (saved to database)
        """
        instance = cls.from_dict(data_dict, user_id, skip_fields)

        try:
            db.session.add(instance)
            if commit:
                db.session.commit()
                logger.info(f"Created {cls.__name__}: {instance}")
            return instance
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error creating {cls.__name__}: {e}")
            raise
