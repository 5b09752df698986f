from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.models.form import AssignmentStatus, FormAssignment, FormResponseSubmit, FormTemplate
from valorwell.services.backend_client import BackendClient
from valorwell.services.forms import FormService
from valorwell.services.permissions import PermissionKey
from valorwell.services.roles import UserRoleContext

router = APIRouter()


@router.get("/templates", response_model=List[FormTemplate])
async def list_templates(
    form_type: Optional[str] = None,
    include_inactive: bool = False,
    context: UserRoleContext = Depends(deps.require_permission(PermissionKey.ACCESS_FORMS)),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    return await FormService(backend, breaker).list_templates(
        context.tenant_id, form_type=form_type, active_only=not include_inactive
    )


@router.get("/assignments", response_model=List[FormAssignment])
async def list_assignments(
    client_id: Optional[str] = None,
    status_filter: Optional[AssignmentStatus] = Query(default=None, alias="status"),
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    """A client's form assignments. Clients get their own; staff pass client_id."""
    if context.is_staff:
        if not client_id:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="client_id is required",
            )
        await deps.ensure_client_access(context, client_id, backend, breaker)
    else:
        client_id = (await deps.get_own_customer(context, backend, breaker)).id
    return await FormService(backend, breaker).list_assignments(client_id, status=status_filter)


@router.post("/responses", status_code=status.HTTP_201_CREATED)
async def submit_response(
    data: FormResponseSubmit,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
) -> Dict[str, Any]:
    await deps.ensure_client_access(context, data.customer_id, backend, breaker)
    return await FormService(backend, breaker).submit_response(data)
