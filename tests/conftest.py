"""
Test fixtures for the portal API.

The hosted backend is replaced by FakeBackend, an in-memory table store
served through httpx.MockTransport. It understands the subset of the REST
query syntax the data services use (eq, neq, gte, lt, in, is.null, order,
limit, offset, count=exact).
"""

import os

os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes!!")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_URL", "http://backend.test")
os.environ.setdefault("SENTRY_DSN", "")

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.core.circuit_breaker_monitor import CircuitBreakerMonitor
from valorwell.core.config import settings
from valorwell.core.jwt import create_access_token
from valorwell.services.backend_client import BackendClient, build_http_client

TENANT_ID = "tenant-1"


class FakeClock:
    """Controllable clock for breaker and monitor timing."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def _render(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _matches(row: Dict[str, Any], column: str, expression: str) -> bool:
    op, _, operand = expression.partition(".")
    value = row.get(column)
    if op == "eq":
        return _render(value) == operand
    if op == "neq":
        return _render(value) != operand
    if op == "is":
        return _render(value) == operand
    if op == "in":
        items = [item.strip('"') for item in operand.strip("()").split(",")]
        return _render(value) in items
    if op == "gte":
        return value is not None and str(value) >= operand
    if op == "lt":
        return value is not None and str(value) < operand
    raise AssertionError(f"Unsupported filter {column}={expression}")


class FakeBackend:
    """In-memory stand-in for the hosted backend's REST and function endpoints."""

    RESERVED_PARAMS = {"select", "order", "limit", "offset"}

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.functions: Dict[str, Any] = {}
        self.errors: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        self.flaky: Dict[str, int] = {}
        self.raises: Dict[str, BaseException] = {}
        self.requests: List[httpx.Request] = []

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)

    def fail(self, name: str, status_code: int, message: str, code: Optional[str] = None) -> None:
        """Make every request to table or function `name` fail."""
        self.errors[name] = (status_code, {"message": message, "code": code, "details": None, "hint": None})

    def fail_times(self, name: str, times: int) -> None:
        """Fail the next `times` requests to `name` with a transient 503."""
        self.flaky[name] = times

    def raise_on(self, name: str, exc: BaseException) -> None:
        """Raise exc from the transport for requests to `name`."""
        self.raises[name] = exc

    def requests_to(self, name: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.rstrip("/").endswith(f"/{name}")]

    def _filtered(self, table: str, params: httpx.QueryParams) -> List[Dict[str, Any]]:
        rows = self.tables.get(table, [])
        for column, expression in params.multi_items():
            if column in self.RESERVED_PARAMS:
                continue
            rows = [r for r in rows if _matches(r, column, expression)]
        return rows

    @staticmethod
    def _ordered(rows: List[Dict[str, Any]], order: Optional[str]) -> List[Dict[str, Any]]:
        if not order:
            return list(rows)
        result = list(rows)
        for clause in reversed(order.split(",")):
            column, direction = clause.split(".")[:2]
            result.sort(key=lambda r: (r.get(column) is None, str(r.get(column))), reverse=direction == "desc")
        return result

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.rstrip("/") == "/rest/v1":
            return httpx.Response(200, json={})

        name = path.rstrip("/").rsplit("/", 1)[-1]
        if name in self.raises:
            raise self.raises[name]
        if self.flaky.get(name):
            self.flaky[name] -= 1
            return httpx.Response(503, json={"message": "Network request failed"})
        if name in self.errors:
            status_code, body = self.errors[name]
            return httpx.Response(status_code, json=body)

        if path.startswith("/functions/v1/"):
            result = self.functions.get(name, {})
            if callable(result):
                result = result(json.loads(request.content or b"{}"))
            return httpx.Response(200, json=result)

        params = request.url.params
        rows = self._filtered(name, params)

        if request.method == "HEAD":
            return httpx.Response(200, headers={"content-range": f"*/{len(rows)}"})

        if request.method == "GET":
            rows = self._ordered(rows, params.get("order"))
            offset = int(params.get("offset", 0))
            limit = params.get("limit")
            rows = rows[offset:] if limit is None else rows[offset : offset + int(limit)]
            return httpx.Response(200, json=rows)

        if request.method == "POST":
            payload = json.loads(request.content)
            new_rows = payload if isinstance(payload, list) else [payload]
            created = []
            for row in new_rows:
                row = {"id": str(uuid.uuid4()), "created_at": datetime.now(timezone.utc).isoformat(), **row}
                self.tables.setdefault(name, []).append(row)
                created.append(row)
            return httpx.Response(201, json=created)

        if request.method == "PATCH":
            values = json.loads(request.content)
            for row in rows:
                row.update(values)
            return httpx.Response(200, json=rows)

        if request.method == "DELETE":
            self.tables[name] = [r for r in self.tables.get(name, []) if r not in rows]
            return httpx.Response(200, json=rows)

        return httpx.Response(405)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def seed_staff_user(
    fake: FakeBackend,
    user_id: str = "staff-user-1",
    staff_id: str = "staff-1",
    admin: bool = False,
    clinical: bool = True,
    with_names: bool = True,
    tenant_id: str = TENANT_ID,
) -> None:
    fake.seed("profiles", {"id": user_id, "email": f"{user_id}@clinic.test"})
    fake.seed("tenant_memberships", {"id": f"tm-{user_id}", "profile_id": user_id, "tenant_id": tenant_id, "tenant_role": "member"})
    fake.seed("user_roles", {"user_id": user_id, "role": "admin" if admin else "staff"})
    fake.seed(
        "staff",
        {
            "id": staff_id,
            "profile_id": user_id,
            "tenant_id": tenant_id,
            "prov_name_f": "Dana" if with_names else None,
            "prov_name_l": "Reyes" if with_names else None,
        },
    )
    fake.seed(
        "staff_role_assignments",
        {
            "id": f"sra-{staff_id}",
            "staff_id": staff_id,
            "tenant_id": tenant_id,
            "staff_role_id": "role-clinician" if clinical else "role-frontdesk",
            "staff_roles": {
                "id": "role-clinician" if clinical else "role-frontdesk",
                "code": "CLINICIAN" if clinical else "FRONT_DESK",
                "name": "Clinician" if clinical else "Front desk",
                "is_clinical": clinical,
            },
        },
    )


def seed_client_user(
    fake: FakeBackend,
    user_id: str = "client-user-1",
    customer_id: str = "customer-1",
    status: str = "registered",
    assigned_clinician: Optional[str] = "staff-1",
    tenant_id: str = TENANT_ID,
) -> None:
    fake.seed("profiles", {"id": user_id, "email": f"{user_id}@mail.test"})
    fake.seed("tenant_memberships", {"id": f"tm-{user_id}", "profile_id": user_id, "tenant_id": tenant_id, "tenant_role": "member"})
    fake.seed("user_roles", {"user_id": user_id, "role": "client"})
    fake.seed(
        "customers",
        {
            "id": customer_id,
            "tenant_id": tenant_id,
            "client_user_id": user_id,
            "status": status,
            "pat_name_f": "Sam",
            "pat_name_l": "Lee",
            "timezone": "America/Chicago",
            "assigned_clinician": assigned_clinician,
        },
    )


def auth_headers(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def backend(fake_backend: FakeBackend):
    http = build_http_client(transport=fake_backend.transport())
    client = BackendClient(http, settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY, access_token="user-token")
    yield client
    await http.aclose()


@pytest.fixture
def monitor(clock: FakeClock) -> CircuitBreakerMonitor:
    return CircuitBreakerMonitor(clock=clock)


@pytest.fixture
def breaker(clock: FakeClock, monitor: CircuitBreakerMonitor) -> CircuitBreaker:
    return CircuitBreaker("test", clock=clock, monitor=monitor)


@pytest.fixture
def failing() -> Callable[[str], Callable]:
    """Factory for async operations that raise Exception(message)."""

    def make(message: str):
        async def operation():
            raise Exception(message)

        return operation

    return make


@pytest.fixture
def api_client(fake_backend: FakeBackend):
    from valorwell.main import create_app

    app = create_app(http_transport=fake_backend.transport())
    with TestClient(app) as client:
        yield client
