"""
Record-storage collaborator.

A thin table-addressed facade over the SQLAlchemy session: create/update/get by
id and query by equality filters. Each create/update is its own transaction.
Keys that are not columns of the target table are rejected, never dropped.
"""
import uuid
from typing import Any, Dict, List, Mapping, Optional, Type

import structlog
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import (
    AuditLog,
    Department,
    DepartmentForm,
    Form,
    LocationDetail,
    Project,
    ServiceReport,
    User,
)
from ..workflow.errors import PersistenceError, UnknownFieldError

logger = structlog.get_logger(__name__)

TABLES: Dict[str, Type] = {
    "service_reports": ServiceReport,
    "audit_logs": AuditLog,
    "location_details": LocationDetail,
    "departments": Department,
    "projects": Project,
    "forms": Form,
    "department_forms": DepartmentForm,
    "users": User,
}


class RecordNotFound(LookupError):
    pass


def columns_of(model) -> List[str]:
    return [attr.key for attr in inspect(model).column_attrs]


def row_to_dict(obj) -> Dict[str, Any]:
    return {key: getattr(obj, key) for key in columns_of(type(obj))}


def _as_uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class RecordStore:
    def __init__(self, db: Session):
        self.db = db

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}")

    def _check_columns(self, model, values: Mapping[str, Any]) -> None:
        unknown = [k for k in values if k not in columns_of(model)]
        if unknown:
            raise UnknownFieldError(unknown)

    def create(self, table: str, values: Mapping[str, Any]) -> uuid.UUID:
        model = self._model(table)
        self._check_columns(model, values)
        obj = model(**dict(values))
        try:
            self.db.add(obj)
            self.db.commit()
            self.db.refresh(obj)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("record_create_failed", table=table, error=str(e))
            raise PersistenceError() from e
        return obj.id

    def update(self, table: str, record_id, values: Mapping[str, Any]) -> None:
        model = self._model(table)
        self._check_columns(model, values)
        obj = self.db.get(model, _as_uuid(record_id))
        if obj is None:
            raise RecordNotFound(f"{table}/{record_id}")
        try:
            for key, value in values.items():
                if key == "id":
                    continue
                setattr(obj, key, value)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("record_update_failed", table=table, record_id=str(record_id), error=str(e))
            raise PersistenceError() from e

    def get(self, table: str, record_id) -> Optional[Dict[str, Any]]:
        model = self._model(table)
        try:
            key = _as_uuid(record_id)
        except ValueError:
            return None
        obj = self.db.get(model, key)
        return row_to_dict(obj) if obj is not None else None

    def query(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        model = self._model(table)
        filters = {k: v for k, v in (filters or {}).items() if v is not None}
        self._check_columns(model, filters)
        q = self.db.query(model)
        for key, value in filters.items():
            q = q.filter(getattr(model, key) == value)
        if order_by:
            column = getattr(model, order_by)
            q = q.order_by(column.desc() if descending else column.asc())
        if offset:
            q = q.offset(offset)
        if limit:
            q = q.limit(limit)
        return [row_to_dict(r) for r in q.all()]

    def delete(self, table: str, record_id) -> None:
        model = self._model(table)
        obj = self.db.get(model, _as_uuid(record_id))
        if obj is None:
            raise RecordNotFound(f"{table}/{record_id}")
        try:
            self.db.delete(obj)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError() from e
