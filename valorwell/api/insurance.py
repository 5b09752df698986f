from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.models.insurance import (
    EligibilityRequest,
    InsurancePolicy,
    InsurancePolicyCreate,
    InsurancePolicyUpdate,
)
from valorwell.services.backend_client import BackendClient
from valorwell.services.insurance import InsuranceService
from valorwell.services.permissions import PermissionKey
from valorwell.services.roles import UserRoleContext

router = APIRouter()


@router.get("/clients/{customer_id}/insurance", response_model=List[InsurancePolicy])
async def list_insurance(
    customer_id: str,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    await deps.ensure_client_access(context, customer_id, backend, breaker)
    return await InsuranceService(backend, breaker).list_active(customer_id)


@router.post(
    "/clients/{customer_id}/insurance",
    response_model=InsurancePolicy,
    status_code=status.HTTP_201_CREATED,
)
async def add_insurance(
    customer_id: str,
    data: InsurancePolicyCreate,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    await deps.ensure_client_access(context, customer_id, backend, breaker)
    return await InsuranceService(backend, breaker).add(customer_id, context.tenant_id, data)


@router.patch("/insurance/{policy_id}", response_model=InsurancePolicy)
async def update_insurance(
    policy_id: str,
    data: InsurancePolicyUpdate,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    service = InsuranceService(backend, breaker)
    policy = await service.get(policy_id)
    await deps.ensure_client_access(context, policy.customer_id, backend, breaker)
    return await service.update(policy_id, data)


@router.delete("/insurance/{policy_id}", response_model=InsurancePolicy)
async def deactivate_insurance(
    policy_id: str,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    """Soft delete: the policy is marked inactive."""
    service = InsuranceService(backend, breaker)
    policy = await service.get(policy_id)
    await deps.ensure_client_access(context, policy.customer_id, backend, breaker)
    return await service.deactivate(policy_id)


@router.post("/insurance/{policy_id}/eligibility")
async def check_eligibility(
    policy_id: str,
    body: EligibilityRequest,
    context: UserRoleContext = Depends(deps.require_permission(PermissionKey.ACCESS_INVOICING)),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
) -> Dict[str, Any]:
    service = InsuranceService(backend, breaker)
    policy = await service.get(policy_id)
    return await service.check_eligibility(policy, body.service_date, body.service_type)
