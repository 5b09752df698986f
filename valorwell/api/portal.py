"""
Portal routing API.

The portal frontends ask where a signed-in user should land before rendering
a page; the answer comes from services.portal_routing.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.models.client import Customer
from valorwell.services.backend_client import BackendClient
from valorwell.services.clients import ClientService
from valorwell.services.portal_routing import Portal, current_state, decide_page_route
from valorwell.services.roles import UserRoleContext

router = APIRouter()


async def _customer_for(context: UserRoleContext, backend: BackendClient, breaker: CircuitBreaker) -> Optional[Customer]:
    if context.signup_incomplete or context.role != "client":
        return None
    return await ClientService(backend, breaker).get_for_user(context.user_id)


@router.get("/me")
async def read_me(
    context: UserRoleContext = Depends(deps.get_role_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
) -> Dict[str, Any]:
    customer = await _customer_for(context, backend, breaker)
    portal = Portal.CLIENT if context.role == "client" else Portal.STAFF
    return {
        **context.to_dict(),
        "portal": portal.value,
        "routing_state": current_state(portal, context, customer),
        "customer_id": customer.id if customer else None,
    }


@router.get("/{portal}/route")
async def route_page(
    portal: Portal,
    page: str = Query(..., min_length=1, max_length=64),
    context: UserRoleContext = Depends(deps.get_role_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
) -> Dict[str, Any]:
    customer = await _customer_for(context, backend, breaker) if portal == Portal.CLIENT else None
    return decide_page_route(portal, page, context, customer).to_dict()
