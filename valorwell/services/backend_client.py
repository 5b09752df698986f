"""
Thin async client for the hosted backend.

Tables are reached through the REST interface ({url}/rest/v1/{table}) and
edge functions through {url}/functions/v1/{name}. Requests carry the anon
key plus the caller's access token, so row-level security is evaluated as the
portal user and never as the service role.

Nothing here retries or classifies errors. Callers route requests through
the circuit breaker (see data_access.TableService).
"""

from typing import Any, Dict, List, Optional, Union

import httpx
import structlog

from valorwell.core.config import settings
from valorwell.services.query import TableQuery

logger = structlog.get_logger(__name__)

Row = Dict[str, Any]


class BackendError(Exception):
    """Error payload returned by the backend ({message, code, details, hint})."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status_code = status_code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "BackendError":
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or body.get("msg") or response.reason_phrase
            return cls(
                message=str(message),
                code=body.get("code"),
                details=body.get("details"),
                hint=body.get("hint"),
                status_code=response.status_code,
            )
        return cls(
            message=response.text or response.reason_phrase or f"HTTP {response.status_code}",
            status_code=response.status_code,
        )


def build_http_client(timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared connection pool, created once per process in the app lifespan."""
    return httpx.AsyncClient(
        timeout=timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS,
        transport=transport,
    )


class BackendClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
    ):
        self._http = http
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token

    def with_token(self, access_token: str) -> "BackendClient":
        """Client bound to a portal user's token, sharing the connection pool."""
        return BackendClient(self._http, self.base_url, self.api_key, access_token)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    @staticmethod
    def _check(response: httpx.Response) -> None:
        if response.status_code >= 400:
            error = BackendError.from_response(response)
            logger.warning(
                "Backend request failed",
                path=response.request.url.path,
                status_code=response.status_code,
                code=error.code,
            )
            raise error

    @staticmethod
    def _rows(response: httpx.Response) -> List[Row]:
        if not response.content:
            return []
        data = response.json()
        if isinstance(data, list):
            return data
        return [data]

    async def select(self, query: TableQuery) -> List[Row]:
        response = await self._http.get(
            self._table_url(query.table),
            params=query.to_params(),
            headers=self._headers(),
        )
        self._check(response)
        return self._rows(response)

    async def select_one(self, query: TableQuery) -> Optional[Row]:
        """First matching row or None (the maybeSingle() pattern)."""
        query.limit = 1
        rows = await self.select(query)
        return rows[0] if rows else None

    async def count(self, query: TableQuery) -> int:
        response = await self._http.head(
            self._table_url(query.table),
            params=query.to_params(),
            headers=self._headers(prefer="count=exact"),
        )
        self._check(response)
        content_range = response.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0

    async def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        response = await self._http.post(
            self._table_url(table),
            json=rows,
            headers=self._headers(prefer="return=representation"),
        )
        self._check(response)
        return self._rows(response)

    async def update(self, query: TableQuery, values: Row) -> List[Row]:
        if not query.filters:
            raise ValueError(f"Refusing to update every row of {query.table}")
        response = await self._http.patch(
            self._table_url(query.table),
            params=query.filter_params(),
            json=values,
            headers=self._headers(prefer="return=representation"),
        )
        self._check(response)
        return self._rows(response)

    async def delete(self, query: TableQuery) -> List[Row]:
        if not query.filters:
            raise ValueError(f"Refusing to delete every row of {query.table}")
        response = await self._http.delete(
            self._table_url(query.table),
            params=query.filter_params(),
            headers=self._headers(prefer="return=representation"),
        )
        self._check(response)
        return self._rows(response)

    async def invoke_function(self, name: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._http.post(
            f"{self.base_url}/functions/v1/{name}",
            json=payload or {},
            headers=self._headers(),
        )
        self._check(response)
        if not response.content:
            return None
        return response.json()

    async def ping(self) -> bool:
        """Cheap reachability probe for health checks."""
        response = await self._http.get(f"{self.base_url}/rest/v1/", headers=self._headers())
        return response.status_code < 500

    async def aclose(self) -> None:
        await self._http.aclose()
