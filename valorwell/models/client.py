from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from valorwell.models.base import BackendRow


class ClientStatus(str, Enum):
    NEW = "new"
    COMPLETING_SIGNUP = "completing_signup"
    REGISTERED = "registered"


class Customer(BackendRow):
    """A client of the practice (customers table)."""

    id: str
    tenant_id: str
    client_user_id: Optional[str] = None  # profiles.id once the client has a login
    status: ClientStatus = ClientStatus.NEW
    pat_name_f: Optional[str] = None
    pat_name_m: Optional[str] = None
    pat_name_l: Optional[str] = None
    preferred_name: Optional[str] = None
    email: Optional[str] = None
    pat_phone: Optional[str] = None
    pat_dob: Optional[date] = None
    pat_sex: Optional[str] = None
    pat_addr_1: Optional[str] = None
    pat_city: Optional[str] = None
    pat_state: Optional[str] = None
    pat_zip: Optional[str] = None
    timezone: Optional[str] = None
    assigned_clinician: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> Optional[str]:
        parts = [p for p in (self.pat_name_f, self.pat_name_m, self.pat_name_l) if p]
        return " ".join(parts) or None

    @property
    def display_name(self) -> str:
        if self.preferred_name:
            return self.preferred_name
        name = " ".join(p for p in (self.pat_name_f, self.pat_name_l) if p)
        return name or "Unknown Client"


class ClientStatusUpdate(BaseModel):
    status: ClientStatus


class ClientProfileUpdate(BaseModel):
    """Fields a client may edit on their own row."""

    pat_name_f: Optional[str] = Field(default=None, max_length=100)
    pat_name_m: Optional[str] = Field(default=None, max_length=100)
    pat_name_l: Optional[str] = Field(default=None, max_length=100)
    preferred_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = None
    pat_phone: Optional[str] = None
    pat_dob: Optional[date] = None
    pat_sex: Optional[str] = None
    pat_addr_1: Optional[str] = None
    pat_city: Optional[str] = None
    pat_state: Optional[str] = Field(default=None, max_length=2)
    pat_zip: Optional[str] = None
    timezone: Optional[str] = None
