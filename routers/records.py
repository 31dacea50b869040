"""
Counseling record endpoints. Notes are decrypted only on the way out.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from database.models import User
from auth.dependencies import (
    get_db_session, get_notifier, require_counselor, require_counselor_or_admin
)
from services.record_service import RecordService
from services.audit_service import AuditService
from services.notification_service import NotificationDispatcher
from routers.appointments import AppointmentResponse, appointment_to_response


router = APIRouter(prefix="/api/records", tags=["records"])


class RecordSave(BaseModel):
    """Save record request."""
    sessionNotes: Optional[str] = None
    progressTracking: Optional[str] = None


class RecordResponse(BaseModel):
    """Decrypted record. sessionNotes is None until the first save."""
    appointment: AppointmentResponse
    sessionNotes: Optional[str]
    progressTracking: Optional[str]
    updatedAt: Optional[str]


def _to_response(view: dict) -> RecordResponse:
    updated_at = view["updated_at"]
    return RecordResponse(
        appointment=appointment_to_response(view["appointment"]),
        sessionNotes=view["session_notes"],
        progressTracking=view["progress_tracking"],
        updatedAt=updated_at.isoformat() if updated_at else None
    )


@router.get("/{appointment_id}", response_model=RecordResponse)
async def view_record(
    appointment_id: int,
    request: Request,
    current_user: User = Depends(require_counselor_or_admin),
    db: Session = Depends(get_db_session)
):
    """
    View the record of an appointment.
    Assigned counselor or admin.
    """
    view = RecordService.view(db, appointment_id, current_user)

    AuditService.log_from_request(
        db=db,
        request=request,
        action="record_view",
        user_id=current_user.id,
        resource_type="appointment",
        resource_id=str(appointment_id)
    )

    return _to_response(view)


@router.put("/{appointment_id}", response_model=RecordResponse)
async def save_record(
    appointment_id: int,
    payload: RecordSave,
    request: Request,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """
    Create or replace the record of an appointment.
    Assigned counselor only.
    """
    RecordService.save(
        db,
        notifier,
        appointment_id,
        current_user,
        session_notes=payload.sessionNotes,
        progress_tracking=payload.progressTracking,
    )

    AuditService.log_from_request(
        db=db,
        request=request,
        action="record_save",
        user_id=current_user.id,
        resource_type="appointment",
        resource_id=str(appointment_id)
    )

    return _to_response(RecordService.view(db, appointment_id, current_user))
