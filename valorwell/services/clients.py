"""Client (customers table) reads and writes."""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import structlog

from valorwell.models.client import ClientProfileUpdate, ClientStatus, Customer
from valorwell.services.data_access import NotFoundError, TableService

logger = structlog.get_logger(__name__)


class ClientService(TableService):
    table = "customers"

    async def get(self, customer_id: str) -> Customer:
        row = await self._select_one(self.query().eq("id", customer_id))
        if row is None:
            raise NotFoundError("Client", customer_id)
        return Customer.model_validate(row)

    async def get_for_user(self, profile_id: str) -> Optional[Customer]:
        """The customers row linked to a client login, if registration got that far."""
        row = await self._select_one(self.query().eq("client_user_id", profile_id))
        return Customer.model_validate(row) if row else None

    async def list_for_tenant(
        self,
        tenant_id: str,
        status: Optional[ClientStatus] = None,
        assigned_clinician: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Customer]:
        query = self.query().eq("tenant_id", tenant_id)
        if status is not None:
            query.eq("status", status)
        if assigned_clinician:
            query.eq("assigned_clinician", assigned_clinician)
        query.order("pat_name_l", nulls_last=True).order("pat_name_f", nulls_last=True).paginate(limit, offset)
        return self._parse(Customer, await self._select(query))

    async def update_status(self, customer_id: str, status: ClientStatus) -> Customer:
        rows = await self._update(
            self.query().eq("id", customer_id),
            {"status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()},
        )
        if not rows:
            raise NotFoundError("Client", customer_id)
        logger.info("Client status updated", customer_id=customer_id, status=status.value)
        return Customer.model_validate(rows[0])

    async def update_profile(self, customer_id: str, updates: ClientProfileUpdate) -> Customer:
        values = updates.model_dump(mode="json", exclude_unset=True)
        if not values:
            return await self.get(customer_id)
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        rows = await self._update(self.query().eq("id", customer_id), values)
        if not rows:
            raise NotFoundError("Client", customer_id)
        return Customer.model_validate(rows[0])

    async def counts_by_status(self, tenant_id: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for status in ClientStatus:
            counts[status.value] = await self._count(
                self.query("id").eq("tenant_id", tenant_id).eq("status", status)
            )
        return counts

    async def display_names(self, customer_ids: Iterable[str]) -> Dict[str, str]:
        ids = list(dict.fromkeys(customer_ids))
        if not ids:
            return {}
        rows = await self._select(
            self.query("id, tenant_id, pat_name_f, pat_name_l, preferred_name").in_("id", ids)
        )
        return {c.id: c.display_name for c in self._parse(Customer, rows)}
