"""
Record store over the remote database.

Operations are addressed by record model (see schemas) and an equality filter
dict; a ``None`` filter value means "IS NULL". Every row read back is validated
into its model, so malformed rows surface as SchemaError at this boundary.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client

from .errors import SchemaError, StoreError, UniqueViolation
from .schemas import Record

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)
Filters = Optional[Dict[str, Any]]

UNIQUE_VIOLATION = "23505"


def _jsonable(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in row.items()}


class RecordStore(ABC):
    """Typed CRUD facade. Subclasses implement the raw table operations."""

    async def get(self, model: Type[R], filters: Filters = None) -> Optional[R]:
        rows = await self._select(model.table_name, filters or {}, None, False, 1)
        return self._parse(model, rows[0]) if rows else None

    async def list(
        self,
        model: Type[R],
        filters: Filters = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[R]:
        rows = await self._select(model.table_name, filters or {}, order, desc, limit)
        return [self._parse(model, row) for row in rows]

    async def insert(self, model: Type[R], row: Dict[str, Any]) -> R:
        rows = await self._insert(model.table_name, _jsonable(row))
        if not rows:
            raise StoreError(f"Insert into {model.table_name} returned no row")
        return self._parse(model, rows[0])

    async def update(self, model: Type[R], filters: Dict[str, Any], patch: Dict[str, Any]) -> List[R]:
        """Apply ``patch`` to every matching row; returns the rows that changed."""
        rows = await self._update(model.table_name, filters, _jsonable(patch))
        return [self._parse(model, row) for row in rows]

    async def delete(self, model: Type[R], filters: Dict[str, Any]) -> None:
        await self._delete(model.table_name, filters)

    @staticmethod
    def _parse(model: Type[R], row: Dict[str, Any]) -> R:
        try:
            return model.model_validate(row)
        except ValidationError as e:
            logger.error("Rejected %s row: %s", model.table_name, e)
            raise SchemaError(f"Unexpected {model.table_name} record shape") from e

    # ============= Raw operations =============

    @abstractmethod
    async def _select(
        self, table: str, filters: Dict[str, Any], order: Optional[str], desc: bool, limit: Optional[int]
    ) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def _insert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def _update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def _delete(self, table: str, filters: Dict[str, Any]) -> None: ...


def _filtered(query, filters: Dict[str, Any]):
    for column, value in filters.items():
        query = query.is_(column, "null") if value is None else query.eq(column, value)
    return query


class SupabaseStore(RecordStore):
    """RecordStore over the synchronous Supabase client; each call runs in a worker thread."""

    def __init__(self, client: Client):
        self.client = client

    async def _run(self, table: str, build):
        def call():
            return build(self.client.table(table)).execute()

        try:
            response = await asyncio.to_thread(call)
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning("Unique violation on %s: %s", table, e.message)
                raise UniqueViolation() from e
            logger.error("Supabase error on %s: %s", table, e.message)
            raise StoreError() from e
        except Exception as e:
            logger.error("Error talking to Supabase (%s): %s", table, e)
            raise StoreError() from e
        return response.data or []

    async def _select(self, table, filters, order, desc, limit):
        def build(q):
            q = _filtered(q.select("*"), filters)
            if order:
                q = q.order(order, desc=desc)
            if limit:
                q = q.limit(limit)
            return q

        return await self._run(table, build)

    async def _insert(self, table, row):
        return await self._run(table, lambda q: q.insert(row))

    async def _update(self, table, filters, patch):
        return await self._run(table, lambda q: _filtered(q.update(patch), filters))

    async def _delete(self, table, filters):
        await self._run(table, lambda q: _filtered(q.delete(), filters))
