from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from valorwell.core.timezones import DEFAULT_TIMEZONE, is_valid_timezone
from valorwell.models.base import BackendRow


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    DOCUMENTED = "documented"
    CANCELLED = "cancelled"
    LATE_CANCEL_NOSHOW = "late_cancel/noshow"


class Appointment(BackendRow):
    id: str
    tenant_id: str
    client_id: str
    staff_id: str
    service_id: Optional[str] = None
    start_at: datetime
    end_at: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    time_zone: str = DEFAULT_TIMEZONE
    is_telehealth: bool = False
    videoroom_url: Optional[str] = None
    series_id: Optional[str] = None
    location_name: Optional[str] = None
    created_by_profile_id: Optional[str] = None


class AppointmentCreate(BaseModel):
    """Appointment as entered by staff: local date and time in time_zone."""

    client_id: str
    staff_id: str
    service_id: Optional[str] = None
    date: str = Field(description="YYYY-MM-DD in time_zone")
    time: str = Field(description="HH:mm in time_zone")
    time_zone: str = DEFAULT_TIMEZONE
    duration_minutes: int = Field(default=60, gt=0, le=24 * 60)
    is_telehealth: bool = False
    location_name: Optional[str] = None

    @field_validator("time_zone")
    @classmethod
    def check_time_zone(cls, v: str) -> str:
        if not is_valid_timezone(v):
            raise ValueError(f"Unknown time zone: {v}")
        return v


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentOut(Appointment):
    """Appointment plus its start/end rendered in the viewer's zone."""

    local_date: Optional[str] = None
    local_start_time: Optional[str] = None
    local_end_time: Optional[str] = None
    display_time_zone: Optional[str] = None
