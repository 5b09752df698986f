from datetime import datetime
from enum import Enum
from typing import Optional

from valorwell.models.base import BackendRow


class AppRole(str, Enum):
    STAFF = "staff"
    ADMIN = "admin"
    CLIENT = "client"


class Profile(BackendRow):
    id: str
    email: Optional[str] = None
    email_verified: bool = False
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TenantMembership(BackendRow):
    id: str
    profile_id: str
    tenant_id: str
    tenant_role: Optional[str] = None


class UserRoleRow(BackendRow):
    user_id: str
    role: AppRole
