"""Staff rows and clinical role lookups."""

from typing import List, Optional

from valorwell.models.staff import Staff, StaffRoleAssignment
from valorwell.services.data_access import NotFoundError, TableService


class StaffService(TableService):
    table = "staff"

    async def get(self, staff_id: str) -> Staff:
        row = await self._select_one(self.query().eq("id", staff_id))
        if row is None:
            raise NotFoundError("Staff", staff_id)
        return Staff.model_validate(row)

    async def get_for_profile(self, profile_id: str, tenant_id: str) -> Optional[Staff]:
        row = await self._select_one(self.query().eq("profile_id", profile_id).eq("tenant_id", tenant_id))
        return Staff.model_validate(row) if row else None

    async def list_for_tenant(self, tenant_id: str) -> List[Staff]:
        query = self.query().eq("tenant_id", tenant_id).order("prov_name_l", nulls_last=True)
        return self._parse(Staff, await self._select(query))

    async def role_assignments(self, staff_id: str) -> List[StaffRoleAssignment]:
        rows = await self._select(
            self.query("*, staff_roles!inner(*)", table="staff_role_assignments").eq("staff_id", staff_id)
        )
        return self._parse(StaffRoleAssignment, rows)

    async def is_clinical(self, staff_id: str) -> bool:
        """True if any assigned staff role is clinical."""
        assignments = await self.role_assignments(staff_id)
        return any(a.staff_roles is not None and a.staff_roles.is_clinical for a in assignments)
