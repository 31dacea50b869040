"""
Appointment lifecycle: booking, approval, completion and cancellation.

Status changes are compare-and-set updates guarded by the transition table
in database.models, so two counselors (or two tabs) racing on the same
appointment cannot both win.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from database.models import (
    Appointment, AppointmentStatus, User, UserRole,
    APPOINTMENT_TRANSITIONS, ACTIVE_APPOINTMENT_STATUSES
)
from core.exceptions import (
    ValidationError, PastDateError, NotFoundError, NotFoundOrForbidden, SlotUnavailable
)
from core.logger import logger
from core.utils import utcnow, to_naive_utc, display_name
from core.validators import is_blank, clean_text


def format_slot(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M")


def _source_statuses(target: AppointmentStatus) -> List[AppointmentStatus]:
    """Statuses from which target is reachable."""
    return [
        status for status, targets in APPOINTMENT_TRANSITIONS.items()
        if target in targets
    ]


class AppointmentService:
    """Service for the appointment lifecycle."""

    @staticmethod
    def book(
        db: Session,
        notifier,
        student: User,
        counselor_id: Optional[int],
        date_time: Optional[datetime],
        reason: Optional[str],
        now: Optional[datetime] = None,
    ) -> Appointment:
        """
        Request an appointment with a counselor.

        Args:
            db: Database session
            notifier: NotificationDispatcher
            student: Booking student
            counselor_id: Requested counselor
            date_time: Requested slot (naive values are taken as UTC)
            reason: Why the student wants to meet
            now: Current time (naive UTC); defaults to the wall clock

        Returns:
            The new pending Appointment

        Raises:
            ValidationError: A field is missing
            NotFoundError: No active counselor with that id
            PastDateError: Slot is not in the future
            SlotUnavailable: Counselor already has an active booking at that time
        """
        if counselor_id is None or date_time is None or is_blank(reason):
            raise ValidationError("Please fill out all fields.")

        now = now or utcnow()
        date_time = to_naive_utc(date_time)

        counselor = db.query(User).filter(
            User.id == counselor_id,
            User.role == UserRole.COUNSELOR,
            User.is_active == True
        ).first()
        if not counselor:
            raise NotFoundError("Counselor not found.")

        if date_time <= now:
            raise PastDateError()

        taken = db.query(Appointment.id).filter(
            Appointment.counselor_id == counselor_id,
            Appointment.date_time == date_time,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES)
        ).first()
        if taken:
            raise SlotUnavailable()

        appointment = Appointment(
            student_id=student.id,
            counselor_id=counselor_id,
            date_time=date_time,
            reason=clean_text(reason),
            status=AppointmentStatus.PENDING,
        )
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError:
            # Another booking for the same slot committed first
            db.rollback()
            logger.info(f"Slot race lost for counselor {counselor_id} at {date_time}")
            raise SlotUnavailable()
        db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} requested by student {student.id} "
            f"with counselor {counselor_id} for {format_slot(date_time)}"
        )

        notifier.notify(
            db,
            counselor_id,
            f"You have a new appointment request from {display_name(student)}."
        )
        return appointment

    @staticmethod
    def _transition(
        db: Session,
        appointment_id: int,
        target: AppointmentStatus,
        ownership,
        error_message: str,
    ) -> Appointment:
        """
        Move an appointment to target if it is currently in a state that allows it
        and the ownership filter matches. Zero matched rows means missing, not
        yours, or wrong state; callers cannot tell which.
        """
        updated = (
            db.query(Appointment)
            .filter(
                Appointment.id == appointment_id,
                ownership,
                Appointment.status.in_(_source_statuses(target))
            )
            .update(
                {Appointment.status: target, Appointment.updated_at: utcnow()},
                synchronize_session=False
            )
        )
        if not updated:
            db.rollback()
            raise NotFoundOrForbidden(error_message)
        db.commit()

        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        logger.info(f"Appointment {appointment_id} -> {target.value}")
        return appointment

    @staticmethod
    def approve(db: Session, notifier, appointment_id: int, counselor_id: int) -> Appointment:
        appointment = AppointmentService._transition(
            db,
            appointment_id,
            AppointmentStatus.APPROVED,
            Appointment.counselor_id == counselor_id,
            "Appointment not found or cannot be approved.",
        )
        notifier.notify(
            db,
            appointment.student_id,
            f"Your appointment for {format_slot(appointment.date_time)} has been approved."
        )
        return appointment

    @staticmethod
    def complete(db: Session, notifier, appointment_id: int, counselor_id: int) -> Appointment:
        appointment = AppointmentService._transition(
            db,
            appointment_id,
            AppointmentStatus.COMPLETED,
            Appointment.counselor_id == counselor_id,
            "Appointment not found or cannot be completed.",
        )
        notifier.notify(
            db,
            appointment.student_id,
            f"Your appointment for {format_slot(appointment.date_time)} has been completed. "
            f"You can now leave feedback."
        )
        return appointment

    @staticmethod
    def cancel(db: Session, notifier, appointment_id: int, user: User) -> Appointment:
        """
        Cancel a pending or approved appointment. The owning student or the
        assigned counselor may cancel; the other party is notified and the
        slot becomes bookable again.
        """
        if user.role == UserRole.STUDENT:
            ownership = Appointment.student_id == user.id
        elif user.role == UserRole.COUNSELOR:
            ownership = Appointment.counselor_id == user.id
        else:
            raise NotFoundOrForbidden("Appointment not found or cannot be canceled.")

        appointment = AppointmentService._transition(
            db,
            appointment_id,
            AppointmentStatus.CANCELED,
            ownership,
            "Appointment not found or cannot be canceled.",
        )

        slot = format_slot(appointment.date_time)
        if user.role == UserRole.STUDENT:
            notifier.notify(
                db,
                appointment.counselor_id,
                f"{display_name(user)} has canceled the appointment for {slot}."
            )
        else:
            notifier.notify(
                db,
                appointment.student_id,
                f"Your appointment for {slot} has been canceled by your counselor."
            )
        return appointment

    @staticmethod
    def list_for_user(
        db: Session,
        user: User,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        """
        Appointments visible to a user, latest slot first.
        Students see their bookings, counselors their assignments, admins everything.
        """
        query = db.query(Appointment).options(
            joinedload(Appointment.student), joinedload(Appointment.counselor)
        )
        if user.role == UserRole.STUDENT:
            query = query.filter(Appointment.student_id == user.id)
        elif user.role == UserRole.COUNSELOR:
            query = query.filter(Appointment.counselor_id == user.id)

        if status is not None:
            query = query.filter(Appointment.status == status)

        return query.order_by(Appointment.date_time.desc(), Appointment.id.desc()).all()
