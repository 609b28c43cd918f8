"""
Shared fakes for the test suite.

InMemoryStore implements the Store methods over plain dicts and records
every call; StubProvider stands in for a generation client. Neither touches
the network.
"""
import copy
import itertools
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from kupado.core.errors import StoreError
from kupado.services.ai.orchestration import AIOrchestrationService


class InMemoryStore:
    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.calls: List[tuple] = []
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.fail_on: Dict[tuple, Exception] = {}
        self._ids = itertools.count(1)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def calls_to(self, op: str, table: Optional[str] = None) -> List[tuple]:
        return [c for c in self.calls if c[0] == op and (table is None or c[1] == table)]

    def _check_failure(self, op: str, table: str) -> None:
        exc = self.fail_on.get((op, table))
        if exc is not None:
            raise exc

    @staticmethod
    def _matches(row, eq=None, neq=None, gt=None, gte=None, lte=None, in_=None, ilike_any=None, ilike=None) -> bool:
        for column, value in (eq or {}).items():
            if row.get(column) != value:
                return False
        for column, value in (neq or {}).items():
            if row.get(column) == value:
                return False
        for column, value in (gt or {}).items():
            if row.get(column) is None or not row[column] > value:
                return False
        for column, value in (gte or {}).items():
            if row.get(column) is None or not row[column] >= value:
                return False
        for column, value in (lte or {}).items():
            if row.get(column) is None or not row[column] <= value:
                return False
        for column, values in (in_ or {}).items():
            if row.get(column) not in list(values):
                return False
        if ilike_any:
            columns, term = ilike_any
            term = term.lower()
            if not any(term in str(row.get(column) or "").lower() for column in columns):
                return False
        for column, term in (ilike or {}).items():
            if term.lower() not in str(row.get(column) or "").lower():
                return False
        return True

    async def select(
        self,
        table,
        columns="*",
        *,
        eq=None,
        neq=None,
        gt=None,
        gte=None,
        lte=None,
        in_=None,
        ilike_any=None,
        ilike=None,
        order_by=None,
        descending=False,
        limit=None,
    ):
        filters = dict(eq=eq, neq=neq, gt=gt, gte=gte, lte=lte, in_=in_, ilike_any=ilike_any, ilike=ilike)
        self.calls.append(("select", table, {k: v for k, v in filters.items() if v}))
        self._check_failure("select", table)
        rows = [copy.deepcopy(r) for r in self.rows(table) if self._matches(r, **filters)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or 0, reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def select_one(self, table, columns="*", **filters):
        rows = await self.select(table, columns, limit=1, **filters)
        return rows[0] if rows else None

    async def insert(self, table, rows):
        batch = [rows] if isinstance(rows, dict) else list(rows)
        self.calls.append(("insert", table, batch))
        self._check_failure("insert", table)
        stored = []
        for row in batch:
            row = dict(row)
            row.setdefault("id", f"{table}-{next(self._ids)}")
            self.rows(table).append(row)
            stored.append(copy.deepcopy(row))
        return stored

    async def update(self, table, values, *, eq):
        self.calls.append(("update", table, {"values": values, "eq": eq}))
        self._check_failure("update", table)
        updated = []
        for row in self.rows(table):
            if self._matches(row, eq=eq):
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated

    async def rpc(self, name, params=None):
        self.calls.append(("rpc", name, params))
        self._check_failure("rpc", name)
        handler = self.rpc_handlers.get(name)
        return handler(params or {}) if handler else None


class StubProvider:
    """Generation client double: returns canned payloads or raises."""

    def __init__(self, payload: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.payload = payload
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, prompt, output_schema, images=None):
        self.calls.append({"prompt": prompt, "output_schema": output_schema, "images": images})
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.payload)

    async def chat(self, history, message, system=None):
        self.calls.append({"history": history, "message": message, "system": system})
        if self.error is not None:
            raise self.error
        return self.payload["text"]


class FakeTimer:
    """perf_counter replacement that advances by ``step`` seconds per reading."""

    def __init__(self, step: float = 0.25):
        self.step = step
        self.now = 100.0

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def gemini():
    return StubProvider()


@pytest.fixture
def claude():
    return StubProvider()


@pytest.fixture
def make_service(store, gemini, claude):
    def factory(**kwargs):
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        kwargs.setdefault("timer", FakeTimer())
        return AIOrchestrationService(
            store=kwargs.pop("store", store),
            providers=kwargs.pop("providers", {"gemini": gemini, "claude": claude}),
            **kwargs,
        )

    return factory


@pytest.fixture
def store_error():
    return StoreError("boom")
