"""
Appointment reads and writes.

Appointments are stored as UTC instants (start_at / end_at) plus the zone
they were booked in. Staff enter a local date and time; the service converts
to UTC on the way in and back to the viewer's zone on the way out.
"""

from datetime import datetime
from typing import List, Optional

import structlog

from valorwell.core.timezones import (
    calculate_end_time,
    combine_date_time_to_utc,
    format_local_time,
    get_zone,
    split_utc_to_local,
    to_backend_timestamp,
)
from valorwell.models.appointment import Appointment, AppointmentCreate, AppointmentOut, AppointmentStatus
from valorwell.services.data_access import NotFoundError, TableService

logger = structlog.get_logger(__name__)


class AppointmentService(TableService):
    table = "appointments"

    async def get(self, appointment_id: str) -> Appointment:
        row = await self._select_one(self.query().eq("id", appointment_id))
        if row is None:
            raise NotFoundError("Appointment", appointment_id)
        return Appointment.model_validate(row)

    async def list_in_range(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        staff_id: Optional[str] = None,
        client_id: Optional[str] = None,
        include_cancelled: bool = False,
    ) -> List[Appointment]:
        """Appointments starting in [start, end), both bounds compared in UTC."""
        if end <= start:
            raise ValueError("Range end must be after range start")

        query = (
            self.query()
            .eq("tenant_id", tenant_id)
            .gte("start_at", to_backend_timestamp(start))
            .lt("start_at", to_backend_timestamp(end))
        )
        if staff_id:
            query.eq("staff_id", staff_id)
        if client_id:
            query.eq("client_id", client_id)
        if not include_cancelled:
            query.neq("status", AppointmentStatus.CANCELLED)
        query.order("start_at")
        return self._parse(Appointment, await self._select(query))

    async def create(self, data: AppointmentCreate, tenant_id: str, created_by: Optional[str] = None) -> Appointment:
        start_at = combine_date_time_to_utc(data.date, data.time, data.time_zone)
        end_at = calculate_end_time(start_at, data.duration_minutes)
        row = await self._insert(
            {
                "tenant_id": tenant_id,
                "client_id": data.client_id,
                "staff_id": data.staff_id,
                "service_id": data.service_id,
                "start_at": to_backend_timestamp(start_at),
                "end_at": to_backend_timestamp(end_at),
                "time_zone": data.time_zone,
                "status": AppointmentStatus.SCHEDULED.value,
                "is_telehealth": data.is_telehealth,
                "location_name": data.location_name,
                "created_by_profile_id": created_by,
            }
        )
        appointment = Appointment.model_validate(row)
        logger.info(
            "Appointment created",
            appointment_id=appointment.id,
            staff_id=appointment.staff_id,
            start_at=to_backend_timestamp(start_at),
        )
        return appointment

    async def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        rows = await self._update(self.query().eq("id", appointment_id), {"status": status.value})
        if not rows:
            raise NotFoundError("Appointment", appointment_id)
        logger.info("Appointment status updated", appointment_id=appointment_id, status=status.value)
        return Appointment.model_validate(rows[0])

    @staticmethod
    def to_display(appointment: Appointment, tz_name: Optional[str] = None) -> AppointmentOut:
        """Attach local date and times for tz_name, or the zone the appointment was booked in."""
        zone_name = get_zone(tz_name or appointment.time_zone).key
        local_date, _ = split_utc_to_local(appointment.start_at, zone_name)
        return AppointmentOut(
            **appointment.model_dump(),
            local_date=local_date,
            local_start_time=format_local_time(appointment.start_at, zone_name),
            local_end_time=format_local_time(appointment.end_at, zone_name),
            display_time_zone=zone_name,
        )
