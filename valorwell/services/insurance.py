"""Client insurance policies and eligibility checks."""

from datetime import date, datetime, timezone
from typing import Any, Dict, List

import structlog

from valorwell.models.insurance import InsurancePolicy, InsurancePolicyCreate, InsurancePolicyUpdate
from valorwell.services.data_access import NotFoundError, TableService

logger = structlog.get_logger(__name__)

ELIGIBILITY_FUNCTION = "check-insurance-eligibility"


class InsuranceService(TableService):
    table = "insurance_information"

    async def get(self, policy_id: str) -> InsurancePolicy:
        row = await self._select_one(self.query().eq("id", policy_id))
        if row is None:
            raise NotFoundError("Insurance policy", policy_id)
        return InsurancePolicy.model_validate(row)

    async def list_active(self, customer_id: str) -> List[InsurancePolicy]:
        """Active policies, primary first."""
        query = self.query().eq("customer_id", customer_id).eq("is_active", True).order("insurance_type")
        return self._parse(InsurancePolicy, await self._select(query))

    async def add(self, customer_id: str, tenant_id: str, data: InsurancePolicyCreate) -> InsurancePolicy:
        values = data.model_dump(mode="json", exclude_none=True)
        values.update({"customer_id": customer_id, "tenant_id": tenant_id, "is_active": True})
        policy = InsurancePolicy.model_validate(await self._insert(values))
        logger.info("Insurance policy added", policy_id=policy.id, customer_id=customer_id)
        return policy

    async def update(self, policy_id: str, data: InsurancePolicyUpdate) -> InsurancePolicy:
        values = data.model_dump(mode="json", exclude_unset=True)
        if not values:
            return await self.get(policy_id)
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        rows = await self._update(self.query().eq("id", policy_id), values)
        if not rows:
            raise NotFoundError("Insurance policy", policy_id)
        return InsurancePolicy.model_validate(rows[0])

    async def deactivate(self, policy_id: str) -> InsurancePolicy:
        """Soft delete: the row stays for claims history."""
        rows = await self._update(
            self.query().eq("id", policy_id),
            {"is_active": False, "updated_at": datetime.now(timezone.utc).isoformat()},
        )
        if not rows:
            raise NotFoundError("Insurance policy", policy_id)
        logger.info("Insurance policy deactivated", policy_id=policy_id)
        return InsurancePolicy.model_validate(rows[0])

    async def check_eligibility(self, policy: InsurancePolicy, service_date: date, service_type: str = "30") -> Dict[str, Any]:
        result = await self._invoke(
            ELIGIBILITY_FUNCTION,
            {
                "customer_id": policy.customer_id,
                "insurance_id": policy.id,
                "service_date": service_date.isoformat(),
                "service_type": service_type,
            },
        )
        logger.info("Eligibility checked", policy_id=policy.id, service_date=service_date.isoformat())
        return result or {}
