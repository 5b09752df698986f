from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.models.client import Customer
from valorwell.models.message import ConversationSummary, Message, MessageCreate, SenderType
from valorwell.services.backend_client import BackendClient
from valorwell.services.messages import MessageService
from valorwell.services.roles import UserRoleContext

router = APIRouter()


def _staff_id(context: UserRoleContext) -> str:
    if context.staff is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No staff record for this user",
        )
    return context.staff.id


async def _own_thread_customer(
    context: UserRoleContext, client_id: str, backend: BackendClient, breaker: CircuitBreaker
) -> Customer:
    customer = await deps.get_own_customer(context, backend, breaker)
    if customer.id != client_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own records",
        )
    return customer


def _clinician_for(customer: Customer, staff_id: Optional[str]) -> str:
    resolved = staff_id or customer.assigned_clinician
    if not resolved:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No clinician assigned",
        )
    return resolved


@router.get("/conversations", response_model=List[ConversationSummary])
async def list_conversations(
    context: UserRoleContext = Depends(deps.get_staff_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    return await MessageService(backend, breaker).conversations(_staff_id(context), context.tenant_id)


@router.get("/{client_id}", response_model=List[Message])
async def read_thread(
    client_id: str,
    staff_id: Optional[str] = None,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    if context.is_staff:
        staff_id = _staff_id(context)
    else:
        customer = await _own_thread_customer(context, client_id, backend, breaker)
        staff_id = _clinician_for(customer, staff_id)
    return await MessageService(backend, breaker).thread(client_id, staff_id)


@router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    data: MessageCreate,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    if context.is_staff:
        staff_id = _staff_id(context)
        sender_type = SenderType.STAFF
    else:
        customer = await _own_thread_customer(context, data.client_id, backend, breaker)
        staff_id = _clinician_for(customer, data.staff_id)
        sender_type = SenderType.CLIENT
    return await MessageService(backend, breaker).send(
        context.tenant_id, data.client_id, staff_id, sender_type, context.user_id, data.body
    )


@router.post("/{client_id}/read")
async def mark_thread_read(
    client_id: str,
    staff_id: Optional[str] = None,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
) -> Dict[str, Any]:
    if context.is_staff:
        staff_id = _staff_id(context)
        reader = SenderType.STAFF
    else:
        customer = await _own_thread_customer(context, client_id, backend, breaker)
        staff_id = _clinician_for(customer, staff_id)
        reader = SenderType.CLIENT
    updated = await MessageService(backend, breaker).mark_read(client_id, staff_id, reader)
    return {"marked_read": updated}
