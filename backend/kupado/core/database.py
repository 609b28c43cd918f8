"""
Supabase store boundary.

Services never touch the Supabase client directly; they receive a ``Store``
whose methods cover the query shapes the marketplace needs (equality, range
and membership filters, ordering, limits, inserts, updates, RPCs). Tests pass
an in-memory implementation of the same methods.
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from dotenv import load_dotenv
from supabase import AsyncClient, acreate_client

from kupado.core.errors import StoreError, StoreUnavailableError
from kupado.core.logging import get_logger

logger = get_logger(__name__)

env_path = Path(__file__).parent.parent.parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)
    logger.info("env_loaded", env_path=str(env_path))
else:
    logger.warning("env_file_not_found", expected_path=str(env_path))

Row = Dict[str, Any]


class Store:
    """Async table/RPC operations over a Supabase client."""

    def __init__(self, client: AsyncClient):
        self.client = client

    @staticmethod
    def _apply_filters(
        query,
        eq: Optional[Mapping[str, Any]] = None,
        neq: Optional[Mapping[str, Any]] = None,
        gt: Optional[Mapping[str, Any]] = None,
        gte: Optional[Mapping[str, Any]] = None,
        lte: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Sequence[Any]]] = None,
        ilike_any: Optional[Tuple[Sequence[str], str]] = None,
        ilike: Optional[Mapping[str, str]] = None,
    ):
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        for column, value in (neq or {}).items():
            query = query.neq(column, value)
        for column, value in (gt or {}).items():
            query = query.gt(column, value)
        for column, value in (gte or {}).items():
            query = query.gte(column, value)
        for column, value in (lte or {}).items():
            query = query.lte(column, value)
        for column, values in (in_ or {}).items():
            query = query.in_(column, list(values))
        if ilike_any:
            columns, term = ilike_any
            # PostgREST or-filter syntax reserves these characters
            term = re.sub(r"[,()%]", " ", term).strip()
            query = query.or_(",".join(f"{column}.ilike.%{term}%" for column in columns))
        for column, term in (ilike or {}).items():
            query = query.ilike(column, f"%{term}%")
        return query

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[Mapping[str, Any]] = None,
        neq: Optional[Mapping[str, Any]] = None,
        gt: Optional[Mapping[str, Any]] = None,
        gte: Optional[Mapping[str, Any]] = None,
        lte: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Sequence[Any]]] = None,
        ilike_any: Optional[Tuple[Sequence[str], str]] = None,
        ilike: Optional[Mapping[str, str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """
        Select rows from ``table``.

        Args:
            eq/neq/gt/gte/lte: column -> value filters
            in_: column -> allowed values
            ilike_any: (columns, term) matched as ``column ILIKE %term%`` on any column
            ilike: column -> term, each matched as ``column ILIKE %term%``
            order_by/descending: sort column and direction
            limit: maximum number of rows
        """
        query = self.client.table(table).select(columns)
        query = self._apply_filters(query, eq, neq, gt, gte, lte, in_, ilike_any, ilike)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)

        response = await self._execute(query, op="select", table=table)
        return list(response.data or [])

    async def select_one(self, table: str, columns: str = "*", **filters: Any) -> Optional[Row]:
        """First row matching ``filters`` (same keywords as ``select``), or None."""
        rows = await self.select(table, columns, limit=1, **filters)
        return rows[0] if rows else None

    async def insert(self, table: str, rows: Union[Row, Iterable[Row]]) -> List[Row]:
        payload = rows if isinstance(rows, dict) else list(rows)
        response = await self._execute(self.client.table(table).insert(payload), op="insert", table=table)
        return list(response.data or [])

    async def update(self, table: str, values: Row, *, eq: Mapping[str, Any]) -> List[Row]:
        if not eq:
            raise ValueError("update requires at least one equality filter")
        query = self._apply_filters(self.client.table(table).update(values), eq=eq)
        response = await self._execute(query, op="update", table=table)
        return list(response.data or [])

    async def rpc(self, name: str, params: Optional[Row] = None) -> Any:
        response = await self._execute(self.client.rpc(name, params or {}), op="rpc", table=name)
        return response.data

    async def _execute(self, query, op: str, table: str):
        try:
            return await query.execute()
        except Exception as e:
            logger.error(
                "store_operation_failed",
                op=op,
                table=table,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreError(f"Database {op} on {table} failed: {e}") from e


_store: Optional[Store] = None


async def initialize_store() -> bool:
    """
    Create the Supabase client used by every request.

    Returns:
        True when the store is ready, False when credentials are missing or
        the client could not be created.
    """
    global _store

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")

    if not supabase_url or not supabase_key:
        logger.warning(
            "supabase_credentials_missing",
            message="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env",
        )
        return False

    if not supabase_url.startswith("http"):
        logger.error(
            "supabase_url_invalid",
            url=supabase_url,
            message="Should start with http:// or https://",
        )
        return False

    try:
        logger.info("supabase_client_creating", url_prefix=supabase_url[:30])
        client = await acreate_client(supabase_url, supabase_key)
    except Exception as e:
        logger.error(
            "supabase_client_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return False

    _store = Store(client)
    logger.info("supabase_client_created")
    return True


def is_store_ready() -> bool:
    return _store is not None


def get_store() -> Store:
    """FastAPI dependency returning the process-wide store."""
    if _store is None:
        raise StoreUnavailableError()
    return _store
