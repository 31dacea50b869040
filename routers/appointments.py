"""
Appointment endpoints: booking, the counselor workflow, cancellation and feedback.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional, List

from database.models import Appointment, AppointmentStatus, User
from auth.dependencies import (
    get_db_session, get_current_user, get_notifier,
    require_student, require_counselor, require_student_or_counselor
)
from core.exceptions import ValidationError
from core.utils import display_name
from services.appointment_service import AppointmentService
from services.feedback_service import FeedbackService
from services.user_service import UserService
from services.audit_service import AuditService
from services.notification_service import NotificationDispatcher


router = APIRouter(prefix="/api/appointments", tags=["appointments"])


# Request/Response Models
class AppointmentCreate(BaseModel):
    """Booking request. Naive date-times are UTC."""
    counselorId: Optional[int] = None
    dateTime: Optional[datetime] = None
    reason: Optional[str] = None


class FeedbackCreate(BaseModel):
    rating: Optional[int] = None
    comment: Optional[str] = None


class AppointmentResponse(BaseModel):
    """Appointment response model."""
    id: int
    studentId: int
    studentName: str
    counselorId: int
    counselorName: str
    dateTime: str
    status: str
    reason: str
    hasRecord: bool
    hasFeedback: bool
    createdAt: str
    updatedAt: str


class AppointmentListResponse(BaseModel):
    data: List[AppointmentResponse]
    total: int


class CounselorResponse(BaseModel):
    id: int
    name: str
    email: str


class FeedbackResponse(BaseModel):
    id: int
    appointmentId: int
    rating: int
    comment: Optional[str]
    createdAt: str


def appointment_to_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        studentId=appointment.student_id,
        studentName=display_name(appointment.student),
        counselorId=appointment.counselor_id,
        counselorName=display_name(appointment.counselor),
        dateTime=appointment.date_time.isoformat(),
        status=appointment.status.value,
        reason=appointment.reason,
        hasRecord=appointment.record is not None,
        hasFeedback=appointment.feedback is not None,
        createdAt=appointment.created_at.isoformat(),
        updatedAt=appointment.updated_at.isoformat()
    )


def _audit(db: Session, request: Request, action: str, user: User, appointment: Appointment):
    AuditService.log_from_request(
        db=db,
        request=request,
        action=action,
        user_id=user.id,
        resource_type="appointment",
        resource_id=str(appointment.id),
        details={"status": appointment.status.value}
    )


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Appointments visible to the caller, latest first.
    Students: own bookings. Counselors: assigned. Admins: all.
    """
    appointment_status = None
    if status_filter:
        try:
            appointment_status = AppointmentStatus(status_filter)
        except ValueError:
            raise ValidationError(f"Unknown status: {status_filter}")

    appointments = AppointmentService.list_for_user(db, current_user, appointment_status)
    return AppointmentListResponse(
        data=[appointment_to_response(a) for a in appointments],
        total=len(appointments)
    )


@router.get("/counselors", response_model=List[CounselorResponse])
async def list_counselors(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    """Counselors a student can book."""
    return [
        CounselorResponse(id=c.id, name=display_name(c), email=c.email)
        for c in UserService.list_counselors(db)
    ]


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    payload: AppointmentCreate,
    request: Request,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """
    Request an appointment.
    Students only.
    """
    appointment = AppointmentService.book(
        db,
        notifier,
        student=current_user,
        counselor_id=payload.counselorId,
        date_time=payload.dateTime,
        reason=payload.reason,
    )
    _audit(db, request, "appointment_book", current_user, appointment)
    return appointment_to_response(appointment)


@router.post("/{appointment_id}/approve", response_model=AppointmentResponse)
async def approve_appointment(
    appointment_id: int,
    request: Request,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """Approve a pending appointment assigned to the caller."""
    appointment = AppointmentService.approve(db, notifier, appointment_id, current_user.id)
    _audit(db, request, "appointment_approve", current_user, appointment)
    return appointment_to_response(appointment)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: int,
    request: Request,
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """Mark an approved appointment assigned to the caller as completed."""
    appointment = AppointmentService.complete(db, notifier, appointment_id, current_user.id)
    _audit(db, request, "appointment_complete", current_user, appointment)
    return appointment_to_response(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    request: Request,
    current_user: User = Depends(require_student_or_counselor),
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """
    Cancel a pending or approved appointment.
    The booking student or the assigned counselor.
    """
    appointment = AppointmentService.cancel(db, notifier, appointment_id, current_user)
    _audit(db, request, "appointment_cancel", current_user, appointment)
    return appointment_to_response(appointment)


@router.post("/{appointment_id}/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    appointment_id: int,
    payload: FeedbackCreate,
    request: Request,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    """Rate a completed appointment (once)."""
    feedback = FeedbackService.submit(
        db,
        appointment_id,
        current_user,
        rating=payload.rating,
        comment=payload.comment,
    )

    AuditService.log_from_request(
        db=db,
        request=request,
        action="feedback_submit",
        user_id=current_user.id,
        resource_type="appointment",
        resource_id=str(appointment_id),
        details={"rating": feedback.rating}
    )

    return FeedbackResponse(
        id=feedback.id,
        appointmentId=feedback.appointment_id,
        rating=feedback.rating,
        comment=feedback.comment,
        createdAt=feedback.created_at.isoformat()
    )
