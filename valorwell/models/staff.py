from datetime import datetime
from typing import Optional

from valorwell.models.base import BackendRow


class Staff(BackendRow):
    id: str
    profile_id: str
    tenant_id: str
    prov_name_f: Optional[str] = None
    prov_name_m: Optional[str] = None
    prov_name_l: Optional[str] = None
    prov_name_for_clients: Optional[str] = None
    prov_status: Optional[str] = None
    prov_license_type: Optional[str] = None
    prov_npi: Optional[str] = None
    prov_accepting_new_clients: bool = False
    created_at: Optional[datetime] = None

    @property
    def has_provider_name(self) -> bool:
        """Onboarding is complete once both provider names are filled in."""
        return bool(self.prov_name_f and self.prov_name_l)


class StaffRole(BackendRow):
    id: str
    code: str
    name: str
    is_clinical: bool = False


class StaffRoleAssignment(BackendRow):
    id: str
    staff_id: str
    staff_role_id: str
    tenant_id: str
    staff_roles: Optional[StaffRole] = None  # embedded via select("*, staff_roles(*)")
