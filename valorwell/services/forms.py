"""Form templates, client assignments and response submission."""

from typing import Any, Dict, List, Optional

import structlog

from valorwell.models.form import AssignmentStatus, FormAssignment, FormResponseSubmit, FormTemplate
from valorwell.services.data_access import TableService

logger = structlog.get_logger(__name__)

SUBMIT_FUNCTION = "submit-form-response"
ASSIGNMENT_COLUMNS = "*, form_template:form_templates(id, tenant_id, name, description, form_type, is_active, version)"


class FormService(TableService):
    table = "form_templates"

    async def list_templates(
        self,
        tenant_id: str,
        form_type: Optional[str] = None,
        active_only: bool = True,
    ) -> List[FormTemplate]:
        query = self.query().eq("tenant_id", tenant_id)
        if form_type:
            query.eq("form_type", form_type)
        if active_only:
            query.eq("is_active", True)
        query.order("name")
        return self._parse(FormTemplate, await self._select(query))

    async def list_assignments(
        self,
        client_id: str,
        status: Optional[AssignmentStatus] = None,
    ) -> List[FormAssignment]:
        query = self.query(ASSIGNMENT_COLUMNS, table="client_form_assignments").eq("client_id", client_id)
        if status is not None:
            query.eq("status", status)
        query.order("assigned_at", ascending=False)
        return self._parse(FormAssignment, await self._select(query))

    async def submit_response(self, data: FormResponseSubmit) -> Dict[str, Any]:
        """Submit through the edge function, which also completes the assignment."""
        result = await self._invoke(SUBMIT_FUNCTION, data.model_dump(mode="json", exclude_none=True))
        logger.info(
            "Form response submitted",
            form_template_id=data.form_template_id,
            customer_id=data.customer_id,
            assignment_id=data.assignment_id,
        )
        return result or {}
