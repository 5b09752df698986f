from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from valorwell.api import deps
from valorwell.core.circuit_breaker import CircuitBreaker
from valorwell.models.appointment import AppointmentCreate, AppointmentOut, AppointmentStatusUpdate
from valorwell.services.appointments import AppointmentService
from valorwell.services.backend_client import BackendClient
from valorwell.services.permissions import PermissionKey
from valorwell.services.roles import UserRoleContext

router = APIRouter()

require_appointments = deps.require_permission(PermissionKey.ACCESS_APPOINTMENTS)


@router.get("", response_model=List[AppointmentOut])
async def list_appointments(
    start: datetime,
    end: datetime,
    staff_id: Optional[str] = None,
    client_id: Optional[str] = None,
    tz: Optional[str] = Query(default=None, description="IANA zone for local fields"),
    include_cancelled: bool = False,
    context: UserRoleContext = Depends(deps.get_tenant_context),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    """
    Appointments starting in [start, end). Naive bounds are taken as UTC.

    Clients only ever see their own appointments.
    """
    if context.is_staff:
        if not context.permissions.has(PermissionKey.ACCESS_APPOINTMENTS):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have the required permissions to access this page.",
            )
    else:
        customer = await deps.get_own_customer(context, backend, breaker)
        client_id = customer.id
        staff_id = None
        tz = tz or customer.timezone

    service = AppointmentService(backend, breaker)
    try:
        appointments = await service.list_in_range(
            context.tenant_id,
            start,
            end,
            staff_id=staff_id,
            client_id=client_id,
            include_cancelled=include_cancelled,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return [service.to_display(a, tz) for a in appointments]


@router.post("", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    data: AppointmentCreate,
    context: UserRoleContext = Depends(require_appointments),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    service = AppointmentService(backend, breaker)
    try:
        appointment = await service.create(data, context.tenant_id, created_by=context.user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return service.to_display(appointment, data.time_zone)


@router.patch("/{appointment_id}/status", response_model=AppointmentOut)
async def update_appointment_status(
    appointment_id: str,
    body: AppointmentStatusUpdate,
    tz: Optional[str] = None,
    context: UserRoleContext = Depends(require_appointments),
    backend: BackendClient = Depends(deps.get_backend),
    breaker: CircuitBreaker = Depends(deps.get_breaker),
):
    service = AppointmentService(backend, breaker)
    appointment = await service.update_status(appointment_id, body.status)
    return service.to_display(appointment, tz)
