from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.core.circuit_breaker_monitor import CircuitBreakerMonitor
from valorwell.core.context import set_tenant_id, set_user_id
from valorwell.core.jwt import InvalidTokenError, TokenClaims, decode_access_token
from valorwell.models.client import Customer
from valorwell.services.backend_client import BackendClient
from valorwell.services.clients import ClientService
from valorwell.services.permissions import PermissionKey
from valorwell.services.roles import RoleCache, RoleDetectionService, UserRoleContext

bearer_scheme = HTTPBearer(auto_error=False)


def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_current_user(token: str = Depends(get_token)) -> TokenClaims:
    """
    Verify the backend-issued access token.
    """
    try:
        claims = decode_access_token(token)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    set_user_id(claims.user_id)
    return claims


def get_breaker(request: Request) -> CircuitBreaker:
    return request.app.state.breaker


def get_identity_breaker(request: Request) -> CircuitBreaker:
    return request.app.state.identity_breaker


def get_monitor(request: Request) -> CircuitBreakerMonitor:
    return request.app.state.monitor


def get_role_cache(request: Request) -> RoleCache:
    return request.app.state.role_cache


def get_backend(request: Request, token: str = Depends(get_token)) -> BackendClient:
    """Backend client acting as the caller, so row-level security applies."""
    return request.app.state.backend.with_token(token)


async def get_role_context(
    claims: TokenClaims = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend),
    breaker: CircuitBreaker = Depends(get_identity_breaker),
    cache: RoleCache = Depends(get_role_cache),
) -> UserRoleContext:
    set_user_id(claims.user_id)
    context = await RoleDetectionService(backend, breaker, cache).detect(claims.user_id)
    if context.tenant_id:
        set_tenant_id(context.tenant_id)
    return context


async def get_tenant_context(context: UserRoleContext = Depends(get_role_context)) -> UserRoleContext:
    """Role context for a user who finished signup and belongs to a tenant."""
    if context.signup_incomplete or not context.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Please complete signup before using the portal",
        )
    return context


async def get_staff_context(context: UserRoleContext = Depends(get_tenant_context)) -> UserRoleContext:
    if not context.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required",
        )
    return context


def require_permission(*keys: PermissionKey) -> Callable:
    """
    Dependency factory: 403 unless the caller holds every listed permission.

        @router.get("/", dependencies=[Depends(require_permission(PermissionKey.ACCESS_CUSTOMERS))])
    """

    async def checker(context: UserRoleContext = Depends(get_tenant_context)) -> UserRoleContext:
        missing = [key.value for key in keys if not context.permissions.has(key)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have the required permissions to access this page.",
            )
        return context

    return checker


async def require_admin(context: UserRoleContext = Depends(get_tenant_context)) -> UserRoleContext:
    if not context.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions",
        )
    return context


async def get_own_customer(context: UserRoleContext, backend: BackendClient, breaker: CircuitBreaker) -> Customer:
    """The customers row of a signed-in client."""
    customer = await ClientService(backend, breaker).get_for_user(context.user_id)
    if customer is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No client record for this user",
        )
    return customer


async def ensure_client_access(
    context: UserRoleContext,
    customer_id: str,
    backend: BackendClient,
    breaker: CircuitBreaker,
) -> None:
    """Staff need access_customers; clients may only reach their own row."""
    if context.is_staff:
        if not context.permissions.has(PermissionKey.ACCESS_CUSTOMERS):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have the required permissions to access this page.",
            )
        return
    customer = await ClientService(backend, breaker).get_for_user(context.user_id)
    if customer is None or customer.id != customer_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own records",
        )
