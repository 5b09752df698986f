"""
Capability flags for portal users.

Permissions are a flat map of PermissionKey -> bool. A user with an explicit
user_permissions row gets exactly that row; everyone else gets the defaults
derived from their roles. has_permission() is a pure lookup and treats
anything other than a literal True as "no".
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from valorwell.services.data_access import TableService


class PermissionKey(str, Enum):
    ACCESS_APPOINTMENTS = "access_appointments"
    ACCESS_CALENDAR = "access_calendar"
    ACCESS_CUSTOMERS = "access_customers"
    ACCESS_FORMS = "access_forms"
    ACCESS_INVOICING = "access_invoicing"
    ACCESS_SERVICES = "access_services"
    ACCESS_SETTINGS = "access_settings"
    ACCESS_USER_MANAGEMENT = "access_user_management"
    SUPERVISOR = "supervisor"


STAFF_PERMISSIONS = frozenset(
    {
        PermissionKey.ACCESS_APPOINTMENTS,
        PermissionKey.ACCESS_CALENDAR,
        PermissionKey.ACCESS_CUSTOMERS,
        PermissionKey.ACCESS_FORMS,
        PermissionKey.ACCESS_SERVICES,
    }
)

ADMIN_PERMISSIONS = STAFF_PERMISSIONS | {
    PermissionKey.ACCESS_INVOICING,
    PermissionKey.ACCESS_SETTINGS,
    PermissionKey.ACCESS_USER_MANAGEMENT,
    PermissionKey.SUPERVISOR,
}

PermissionMap = Dict[str, bool]


@dataclass(frozen=True)
class UserPermissions:
    profile_id: str
    tenant_id: str
    flags: PermissionMap = field(default_factory=dict)
    explicit: bool = False  # True when read from user_permissions

    def has(self, key: "PermissionKey | str") -> bool:
        return has_permission(self.flags, key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile_id": self.profile_id,
            "tenant_id": self.tenant_id,
            "explicit": self.explicit,
            **{k.value: self.flags.get(k.value, False) for k in PermissionKey},
        }


def _key_name(key: "PermissionKey | str") -> str:
    return key.value if isinstance(key, PermissionKey) else key


def has_permission(permissions: Optional[Mapping[str, Any]], key: "PermissionKey | str") -> bool:
    """True only if the map exists and holds a literal True for key."""
    if not permissions:
        return False
    return permissions.get(_key_name(key)) is True


def has_all_permissions(permissions: Optional[Mapping[str, Any]], keys: Iterable["PermissionKey | str"]) -> bool:
    return all(has_permission(permissions, key) for key in keys)


def has_any_permission(permissions: Optional[Mapping[str, Any]], keys: Iterable["PermissionKey | str"]) -> bool:
    return any(has_permission(permissions, key) for key in keys)


def permissions_from_roles(is_staff: bool, is_admin: bool) -> PermissionMap:
    granted = ADMIN_PERMISSIONS if is_admin else STAFF_PERMISSIONS if is_staff else frozenset()
    return {key.value: key in granted for key in PermissionKey}


def default_permissions(role: Optional[str]) -> PermissionMap:
    """Defaults for a user without a user_permissions row."""
    return permissions_from_roles(is_staff=role in ("staff", "admin"), is_admin=role == "admin")


def permissions_from_row(row: Mapping[str, Any]) -> PermissionMap:
    """Only literal True grants; null columns are False."""
    return {key.value: row.get(key.value) is True for key in PermissionKey}


class PermissionService(TableService):
    table = "user_permissions"

    async def get_explicit(self, profile_id: str, tenant_id: Optional[str] = None) -> Optional[PermissionMap]:
        query = self.query().eq("user_id", profile_id)
        if tenant_id:
            query.eq("tenant_id", tenant_id)
        row = await self._select_one(query)
        return permissions_from_row(row) if row else None

    async def resolve(
        self,
        profile_id: str,
        tenant_id: str,
        is_staff: bool,
        is_admin: bool,
    ) -> UserPermissions:
        explicit = await self.get_explicit(profile_id, tenant_id)
        if explicit is not None:
            return UserPermissions(profile_id, tenant_id, explicit, explicit=True)
        return UserPermissions(profile_id, tenant_id, permissions_from_roles(is_staff, is_admin))
