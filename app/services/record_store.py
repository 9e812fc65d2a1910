"""
Record store: the only way services reach persistent state.

The store only knows fetch / insert / update by filter on a named table, plus
a substring search; rows go in and out as plain dicts. Two adapters:

  SupabaseRecordStore  → PostgREST via supabase-py (production)
  SqlRecordStore       → SQLAlchemy Core against the ORM metadata
                         (local dev, tests, or a directly reachable Postgres)

Filter semantics are shared by both:
  {"col": value}          col = value
  {"col": None}           col IS NULL
  {"col": [a, b, ...]}    col IN (a, b, ...)
"""
import logging
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from sqlalchemy import insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from supabase import Client

from app.core.exceptions import DuplicateRecordError, StoreError
from app.database import Base
import app.models  # noqa: F401  registers the tables on Base.metadata

logger = logging.getLogger(__name__)

Filters = Dict[str, Any]

# Postgres SQLSTATE for unique_violation, surfaced by PostgREST as `code`
UNIQUE_VIOLATION = "23505"


class RecordStore(ABC):
    @abstractmethod
    def fetch(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[dict]:
        ...

    @abstractmethod
    def insert(self, table: str, record: dict) -> dict:
        ...

    @abstractmethod
    def update(self, table: str, filters: Filters, patch: dict) -> List[dict]:
        """Returns the updated rows; an empty list means nothing matched."""
        ...

    @abstractmethod
    def search(
        self,
        table: str,
        columns: List[str],
        term: str,
        filters: Optional[Filters] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        """Case-insensitive substring match of `term` on ANY of `columns`, ANDed with filters."""
        ...

    def fetch_one(self, table: str, filters: Filters) -> Optional[dict]:
        rows = self.fetch(table, filters, limit=1)
        return rows[0] if rows else None


def _has_empty_membership(filters: Optional[Filters]) -> bool:
    return any(isinstance(v, (list, tuple)) and not v for v in (filters or {}).values())


# ── Supabase / PostgREST ──────────────────────────────────────────────────────

def _jsonable(record: dict) -> dict:
    out = {}
    for key, value in record.items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[key] = value
    return out


def _postgrest_pattern(term: str) -> str:
    # , ( ) are or= syntax in PostgREST and * is its wildcard
    cleaned = re.sub(r"[,()*%]", "", term)
    return f"*{cleaned}*"


class SupabaseRecordStore(RecordStore):
    def __init__(self, supabase: Client):
        self.supabase = supabase

    @staticmethod
    def _apply_filters(query, filters: Optional[Filters]):
        for column, value in (filters or {}).items():
            if value is None:
                query = query.is_(column, "null")
            elif isinstance(value, (list, tuple)):
                query = query.in_(column, list(value))
            else:
                query = query.eq(column, value)
        return query

    def fetch(self, table, filters=None, order_by=None, desc=False, limit=None, offset=None):
        # PostgREST pages by inclusive row range, which needs both ends
        if offset and limit is None:
            raise StoreError(f"fetch on {table}: offset requires a limit")
        if _has_empty_membership(filters):
            return []
        try:
            query = self._apply_filters(self.supabase.table(table).select("*"), filters)
            if order_by:
                query = query.order(order_by, desc=desc)
            if limit is not None and offset:
                query = query.range(offset, offset + limit - 1)
            elif limit is not None:
                query = query.limit(limit)
            return query.execute().data or []
        except APIError as e:
            logger.error(f"Supabase fetch on {table} failed: {e.message}")
            raise StoreError(f"fetch on {table} failed: {e.message}") from e

    def search(self, table, columns, term, filters=None, limit=None):
        if _has_empty_membership(filters):
            return []
        pattern = _postgrest_pattern(term)
        try:
            query = self._apply_filters(self.supabase.table(table).select("*"), filters)
            query = query.or_(",".join(f"{c}.ilike.{pattern}" for c in columns))
            if limit is not None:
                query = query.limit(limit)
            return query.execute().data or []
        except APIError as e:
            logger.error(f"Supabase search on {table} failed: {e.message}")
            raise StoreError(f"search on {table} failed: {e.message}") from e

    def insert(self, table, record):
        try:
            result = self.supabase.table(table).insert(_jsonable(record)).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateRecordError(f"duplicate row in {table}") from e
            logger.error(f"Supabase insert on {table} failed: {e.message}")
            raise StoreError(f"insert on {table} failed: {e.message}") from e
        if not result.data:
            raise StoreError(f"insert on {table} returned no row")
        return result.data[0]

    def update(self, table, filters, patch):
        if _has_empty_membership(filters):
            return []
        try:
            query = self._apply_filters(self.supabase.table(table).update(_jsonable(patch)), filters)
            return query.execute().data or []
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateRecordError(f"duplicate row in {table}") from e
            logger.error(f"Supabase update on {table} failed: {e.message}")
            raise StoreError(f"update on {table} failed: {e.message}") from e


# ── SQLAlchemy ────────────────────────────────────────────────────────────────

class SqlRecordStore(RecordStore):
    def __init__(self, engine: Engine):
        self.engine = engine
        self.tables = Base.metadata.tables

    def _table(self, name: str):
        try:
            return self.tables[name]
        except KeyError:
            raise StoreError(f"unknown table {name}")

    @staticmethod
    def _where(table, filters: Optional[Filters]):
        clauses = []
        for column, value in (filters or {}).items():
            col = table.c[column]
            if value is None:
                clauses.append(col.is_(None))
            elif isinstance(value, (list, tuple)):
                clauses.append(col.in_(list(value)))
            else:
                clauses.append(col == value)
        return clauses

    def fetch(self, table, filters=None, order_by=None, desc=False, limit=None, offset=None):
        t = self._table(table)
        stmt = select(t).where(*self._where(t, filters))
        if order_by:
            stmt = stmt.order_by(t.c[order_by].desc() if desc else t.c[order_by].asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        try:
            with self.engine.connect() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings().all()]
        except SQLAlchemyError as e:
            logger.error(f"SQL fetch on {table} failed: {e}")
            raise StoreError(f"fetch on {table} failed") from e

    def search(self, table, columns, term, filters=None, limit=None):
        t = self._table(table)
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        matches = [t.c[c].ilike(f"%{escaped}%", escape="\\") for c in columns]
        stmt = select(t).where(*self._where(t, filters), or_(*matches))
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self.engine.connect() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings().all()]
        except SQLAlchemyError as e:
            logger.error(f"SQL search on {table} failed: {e}")
            raise StoreError(f"search on {table} failed") from e

    def insert(self, table, record):
        t = self._table(table)
        stmt = insert(t).values(**record).returning(*t.c)
        try:
            with self.engine.begin() as conn:
                return dict(conn.execute(stmt).mappings().one())
        except IntegrityError as e:
            raise DuplicateRecordError(f"duplicate row in {table}") from e
        except SQLAlchemyError as e:
            logger.error(f"SQL insert on {table} failed: {e}")
            raise StoreError(f"insert on {table} failed") from e

    def update(self, table, filters, patch):
        t = self._table(table)
        stmt = update(t).where(*self._where(t, filters)).values(**patch).returning(*t.c)
        try:
            with self.engine.begin() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings().all()]
        except IntegrityError as e:
            raise DuplicateRecordError(f"duplicate row in {table}") from e
        except SQLAlchemyError as e:
            logger.error(f"SQL update on {table} failed: {e}")
            raise StoreError(f"update on {table} failed") from e
