"""
Base class for per-feature data services.

Every backend call made by a service goes through the shared circuit
breaker, so a misbehaving row-level-security policy on one table stops the
whole portal from hammering the backend.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel

from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.services.backend_client import BackendClient, Row
from valorwell.services.query import TableQuery

logger = structlog.get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class NotFoundError(Exception):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class TableService:
    table: str = ""

    def __init__(self, backend: BackendClient, breaker: CircuitBreaker):
        self.backend = backend
        self.breaker = breaker

    def query(self, columns: str = "*", table: Optional[str] = None) -> TableQuery:
        return TableQuery(table or self.table, columns)

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        logger.debug("Backend call", operation=operation, table=self.table)
        return await self.breaker.execute(fn)

    async def _select(self, query: TableQuery) -> List[Row]:
        return await self._call(f"select {query.table}", lambda: self.backend.select(query))

    async def _select_one(self, query: TableQuery) -> Optional[Row]:
        return await self._call(f"select_one {query.table}", lambda: self.backend.select_one(query))

    async def _count(self, query: TableQuery) -> int:
        return await self._call(f"count {query.table}", lambda: self.backend.count(query))

    async def _insert(self, values: Dict[str, Any], table: Optional[str] = None) -> Row:
        target = table or self.table
        rows = await self._call(f"insert {target}", lambda: self.backend.insert(target, values))
        if not rows:
            raise NotFoundError(target, "inserted row")
        return rows[0]

    async def _update(self, query: TableQuery, values: Dict[str, Any]) -> List[Row]:
        return await self._call(f"update {query.table}", lambda: self.backend.update(query, values))

    async def _invoke(self, function_name: str, payload: Dict[str, Any]) -> Any:
        return await self._call(
            f"invoke {function_name}",
            lambda: self.backend.invoke_function(function_name, payload),
        )

    @staticmethod
    def _parse(model: Type[M], rows: List[Row]) -> List[M]:
        return [model.model_validate(row) for row in rows]
