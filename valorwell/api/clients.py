from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.models.client import ClientProfileUpdate, ClientStatus, ClientStatusUpdate, Customer
from valorwell.services.backend_client import BackendClient
from valorwell.services.clients import ClientService
from valorwell.services.permissions import PermissionKey
from valorwell.services.roles import UserRoleContext

router = APIRouter()

require_customers = deps.require_permission(PermissionKey.ACCESS_CUSTOMERS)


@router.get("", response_model=List[Customer])
async def list_clients(
    status: Optional[ClientStatus] = None,
    assigned_clinician: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    context: UserRoleContext = Depends(require_customers),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    return await ClientService(backend, breaker).list_for_tenant(
        context.tenant_id, status=status, assigned_clinician=assigned_clinician, limit=limit, offset=offset
    )


@router.get("/counts")
async def client_counts(
    context: UserRoleContext = Depends(require_customers),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
) -> Dict[str, int]:
    """Client count per status, for the staff dashboard."""
    return await ClientService(backend, breaker).counts_by_status(context.tenant_id)


@router.get("/me", response_model=Customer)
async def read_my_record(
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    return await deps.get_own_customer(context, backend, breaker)


@router.patch("/me", response_model=Customer)
async def update_my_record(
    updates: ClientProfileUpdate,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    customer = await deps.get_own_customer(context, backend, breaker)
    return await ClientService(backend, breaker).update_profile(customer.id, updates)


@router.patch("/{customer_id}/status", response_model=Customer)
async def update_client_status(
    customer_id: str,
    body: ClientStatusUpdate,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    """
    Move a client through registration.

    Staff may set any status; a client may only advance their own row.
    """
    await deps.ensure_client_access(context, customer_id, backend, breaker)
    return await ClientService(backend, breaker).update_status(customer_id, body.status)
