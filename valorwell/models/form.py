from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from valorwell.models.base import BackendRow


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class FormTemplate(BackendRow):
    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    form_type: Optional[str] = None
    is_active: bool = True
    version: int = 1


class FormAssignment(BackendRow):
    id: str
    tenant_id: str
    client_id: str
    form_template_id: str
    status: AssignmentStatus = AssignmentStatus.PENDING
    assigned_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    form_response_id: Optional[str] = None
    notes: Optional[str] = None
    form_template: Optional[FormTemplate] = None


class FormResponseSubmit(BaseModel):
    form_template_id: str
    customer_id: str
    assignment_id: Optional[str] = None
    response_data: Dict[str, Any] = Field(default_factory=dict)
