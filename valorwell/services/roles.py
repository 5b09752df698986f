"""
Role detection for portal users.

Resolves who a signed-in user is, in this order:

1. profiles row (missing -> signup_incomplete context)
2. tenant_memberships row (missing -> TenantMembershipMissingError)
3. user_roles (admin / staff / client)
4. staff row for staff and admins
5. staff_role_assignments -> staff_roles.is_clinical
6. permissions (explicit user_permissions row, else role defaults)

Results are cached per user for ROLE_CACHE_TTL_SECONDS, concurrent lookups
for the same user share one backend round trip, and network or timeout
failures are retried with backoff.

While the circuit reports policy errors (or is open), a user's last known
context is served instead of querying policy-guarded tables again.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog
from cachetools import LRUCache, TTLCache

from valorwell.core.config import settings
from valorwell.core.circuit_breaker import CircuitOpenError
from valorwell.core.error_classification import ErrorType, classify_error, is_policy_error
from valorwell.core.query_dedup import QueryDeduplicator
from valorwell.core.retry import retry_with_backoff
from valorwell.models.profile import AppRole, Profile, TenantMembership
from valorwell.models.staff import Staff
from valorwell.services.data_access import TableService
from valorwell.services.permissions import PermissionService, UserPermissions
from valorwell.services.staff import StaffService

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS = frozenset({ErrorType.NETWORK_ERROR, ErrorType.TIMEOUT_ERROR})


def _is_transient(error: BaseException, attempt: int) -> bool:
    if isinstance(error, CircuitOpenError):
        return False
    return classify_error(error).type in TRANSIENT_ERRORS


class TenantMembershipMissingError(Exception):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User is not associated with any tenant")


@dataclass(frozen=True)
class UserRoleContext:
    user_id: str
    role: str  # "staff" or "client"
    is_staff: bool
    is_client: bool
    is_clinician: bool
    is_admin: bool
    tenant_id: Optional[str]
    permissions: UserPermissions
    profile: Optional[Profile] = None
    staff: Optional[Staff] = None
    signup_incomplete: bool = False

    @classmethod
    def incomplete(cls, user_id: str) -> "UserRoleContext":
        return cls(
            user_id=user_id,
            role="staff",
            is_staff=False,
            is_client=False,
            is_clinician=False,
            is_admin=False,
            tenant_id=None,
            permissions=UserPermissions(profile_id=user_id, tenant_id=""),
            signup_incomplete=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "is_staff": self.is_staff,
            "is_client": self.is_client,
            "is_clinician": self.is_clinician,
            "is_admin": self.is_admin,
            "tenant_id": self.tenant_id,
            "permissions": self.permissions.to_dict(),
            "staff_id": self.staff.id if self.staff else None,
            "signup_incomplete": self.signup_incomplete,
        }


class RoleCache:
    """Process-wide cache of UserRoleContext, guarded by a lock."""

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_users: Optional[int] = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        maxsize = max_users or settings.ROLE_CACHE_MAX_USERS
        self._cache: TTLCache = TTLCache(
            maxsize=maxsize,
            ttl=ttl_seconds if ttl_seconds is not None else settings.ROLE_CACHE_TTL_SECONDS,
            timer=timer,
        )
        # Outlives the TTL; only read while policy fallback is active.
        self._last_known: LRUCache = LRUCache(maxsize=maxsize)
        self._lock = threading.Lock()
        self.dedup = QueryDeduplicator()

    def get(self, user_id: str) -> Optional[UserRoleContext]:
        with self._lock:
            return self._cache.get(user_id)

    def set(self, user_id: str, context: UserRoleContext) -> None:
        with self._lock:
            self._cache[user_id] = context
            self._last_known[user_id] = context

    def get_last_known(self, user_id: str) -> Optional[UserRoleContext]:
        with self._lock:
            return self._last_known.get(user_id)

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._cache.pop(user_id, None)
            self._last_known.pop(user_id, None)
        logger.info("Role cache invalidated", user_id=user_id)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._last_known.clear()


class RoleDetectionService(TableService):
    table = "profiles"

    def __init__(self, backend, breaker, cache: RoleCache):
        super().__init__(backend, breaker)
        self.cache = cache

    async def detect(self, user_id: str) -> UserRoleContext:
        cached = self.cache.get(user_id)
        if cached is not None:
            logger.debug("Using cached role", user_id=user_id, role=cached.role)
            return cached

        if self.breaker.should_use_policy_fallback():
            stale = self.cache.get_last_known(user_id)
            if stale is not None:
                logger.warning("Policy fallback active, serving last known role", user_id=user_id)
                return stale

        try:
            context = await self.cache.dedup.deduplicate(
                f"role:{user_id}",
                lambda: retry_with_backoff(
                    lambda: self._fetch(user_id),
                    should_retry=_is_transient,
                    operation_name="role detection",
                ),
            )
        except Exception as exc:
            stale = self.cache.get_last_known(user_id)
            error_type = classify_error(exc).type
            if stale is None or not (isinstance(exc, CircuitOpenError) or is_policy_error(error_type)):
                raise
            logger.warning("Role detection failed, serving last known role", user_id=user_id, error_type=error_type.value)
            return stale
        if not context.signup_incomplete:
            self.cache.set(user_id, context)
        return context

    def invalidate(self, user_id: str) -> None:
        self.cache.invalidate(user_id)

    async def _fetch(self, user_id: str) -> UserRoleContext:
        profile_row = await self._select_one(self.query().eq("id", user_id))
        if profile_row is None:
            logger.warning("Profile not found - user needs to complete signup", user_id=user_id)
            return UserRoleContext.incomplete(user_id)
        profile = Profile.model_validate(profile_row)

        membership_row = await self._select_one(
            self.query("tenant_id, tenant_role, id, profile_id", table="tenant_memberships").eq("profile_id", user_id)
        )
        if membership_row is None:
            logger.error("Tenant membership not found", user_id=user_id)
            raise TenantMembershipMissingError(user_id)
        tenant_id = TenantMembership.model_validate(membership_row).tenant_id

        role_rows = await self._select(self.query("role", table="user_roles").eq("user_id", user_id))
        roles = {row.get("role") for row in role_rows}
        is_admin = AppRole.ADMIN.value in roles
        is_staff = AppRole.STAFF.value in roles or is_admin
        is_client = AppRole.CLIENT.value in roles

        staff: Optional[Staff] = None
        is_clinician = False
        if is_staff:
            staff_service = StaffService(self.backend, self.breaker)
            staff = await staff_service.get_for_profile(user_id, tenant_id)
            if staff is not None:
                is_clinician = await staff_service.is_clinical(staff.id)
            else:
                logger.info("No staff record found", user_id=user_id)

        permissions = await PermissionService(self.backend, self.breaker).resolve(
            user_id, tenant_id, is_staff=is_staff, is_admin=is_admin
        )

        context = UserRoleContext(
            user_id=user_id,
            role="staff" if is_staff else "client",
            is_staff=is_staff,
            is_client=is_client,
            is_clinician=is_clinician,
            is_admin=is_admin,
            tenant_id=tenant_id,
            permissions=permissions,
            profile=profile,
            staff=staff,
        )
        logger.info(
            "Role detection complete",
            user_id=user_id,
            role=context.role,
            is_admin=is_admin,
            is_clinician=is_clinician,
        )
        return context

