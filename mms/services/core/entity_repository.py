"""
Entity Repository
Query-by-filter access to engine entities for the CRUD layer and for the
engine's own lookups.

Handles:
- Filter dictionaries validated against mapped columns
- Soft-delete awareness
- Pagination via Flask-SQLAlchemy
"""

from typing import Any, Dict, List, Optional, Sequence
from flask_sqlalchemy.pagination import Pagination
from sqlalchemy import func, inspect
from mms import db
from mms.business.core.errors import NotFound, ValidationError


class EntityRepository:
    """
    Repository over one model class.

    Filters are plain dictionaries keyed by column name. A list or tuple
    value means IN. Unknown keys are rejected rather than ignored.
    """

    def __init__(self, model):
        self.model = model
        self._columns = {column.key: column for column in inspect(model).columns}

    @property
    def soft_deletes(self) -> bool:
        return 'is_deleted' in self._columns

    def build_filtered_query(self, filters: Optional[Dict[str, Any]] = None, include_deleted: bool = False):
        """
        Build a filtered query.

        Args:
            filters: Column name -> value (list/tuple values match with IN)
            include_deleted: Include soft-deleted rows

        Returns:
            SQLAlchemy query object

        Raises:
            ValidationError: If a filter key is not a column of the model
        """
        query = self.model.query
        filters = filters or {}

        unknown = [key for key in filters if key not in self._columns]
        if unknown:
            raise ValidationError(f"Unknown {self.model.__name__} filter field(s): {', '.join(sorted(unknown))}")

        for key, value in filters.items():
            column = getattr(self.model, key)
            if isinstance(value, (list, tuple, set, frozenset)):
                query = query.filter(column.in_(list(value)))
            elif value is None:
                query = query.filter(column.is_(None))
            else:
                query = query.filter(column == value)

        if self.soft_deletes and not include_deleted and 'is_deleted' not in filters:
            query = query.filter(self.model.is_deleted.is_(False))

        return query

    def _order(self, query, order_by: Optional[Sequence[str]]):
        if not order_by:
            return query.order_by(self.model.id)
        for key in order_by:
            descending = key.startswith('-')
            name = key.lstrip('-')
            if name not in self._columns:
                raise ValidationError(f"Unknown {self.model.__name__} order field: {name}")
            column = getattr(self.model, name)
            query = query.order_by(column.desc() if descending else column)
        return query

    def find(self, filters: Optional[Dict[str, Any]] = None, order_by: Optional[Sequence[str]] = None,
             include_deleted: bool = False) -> List:
        """Return all entities matching the filters"""
        return self._order(self.build_filtered_query(filters, include_deleted), order_by).all()

    def find_by_id(self, entity_id: int, include_deleted: bool = False):
        """Return the entity or None"""
        entity = db.session.get(self.model, entity_id)
        if entity is None:
            return None
        if self.soft_deletes and entity.is_deleted and not include_deleted:
            return None
        return entity

    def get(self, entity_id: int, include_deleted: bool = False):
        """
        Return the entity.

        Raises:
            NotFound: If it does not exist or is soft-deleted
        """
        entity = self.find_by_id(entity_id, include_deleted=include_deleted)
        if entity is None:
            raise NotFound(self.model.__name__, entity_id)
        return entity

    def find_by_code(self, code: str, include_deleted: bool = False):
        if 'code' not in self._columns:
            raise ValidationError(f"{self.model.__name__} has no code field")
        return self.build_filtered_query({'code': code}, include_deleted).first()

    def save(self, entity, commit: bool = True):
        """Add the entity to the session and optionally commit"""
        db.session.add(entity)
        if commit:
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        else:
            db.session.flush()
        return entity

    def count_matching(self, filters: Optional[Dict[str, Any]] = None, include_deleted: bool = False) -> int:
        """Count matching entities. For display only, never for code generation."""
        query = self.build_filtered_query(filters, include_deleted)
        return query.with_entities(func.count(self.model.id)).scalar()

    def paginate(self, filters: Optional[Dict[str, Any]] = None, page: int = 1, per_page: int = 20,
                 order_by: Optional[Sequence[str]] = None, include_deleted: bool = False) -> Pagination:
        """
        Get a page of matching entities.

        Args:
            filters: Column filters
            page: Page number (default: 1)
            per_page: Items per page (default: 20)
            order_by: Column names, prefix with '-' for descending

        Returns:
            Flask-SQLAlchemy Pagination object
        """
        query = self._order(self.build_filtered_query(filters, include_deleted), order_by)
        return query.paginate(page=page, per_page=per_page, error_out=False)

    def __repr__(self):
        return f'<EntityRepository {self.model.__name__}>'
