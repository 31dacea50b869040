"""
Counseling records: session notes encrypted at rest, one record per appointment.
"""
from typing import Dict, Any, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import Appointment, CounselingRecord, User, UserRole
from auth.security import encrypt_data, decrypt_data
from core.exceptions import NotFoundError, Forbidden
from core.logger import logger
from core.validators import is_blank


class RecordService:
    """Service for counseling notes and progress tracking."""

    @staticmethod
    def _get_appointment(db: Session, appointment_id: int) -> Appointment:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found.")
        return appointment

    @staticmethod
    def save(
        db: Session,
        notifier,
        appointment_id: int,
        counselor: User,
        session_notes: Optional[str],
        progress_tracking: Optional[str] = None,
    ) -> CounselingRecord:
        """
        Create or replace the record of an appointment.

        Only the assigned counselor may write. Session notes are encrypted
        before they reach the database; progress tracking stays plaintext and,
        when present, is forwarded to the student verbatim.

        Raises:
            NotFoundError: Unknown appointment
            Forbidden: Acting user is not the assigned counselor
        """
        appointment = RecordService._get_appointment(db, appointment_id)
        if appointment.counselor_id != counselor.id:
            raise Forbidden("You are not authorized to save these records.")

        encrypted_notes = encrypt_data(session_notes or "")
        progress = None if is_blank(progress_tracking) else progress_tracking

        record = db.query(CounselingRecord).filter(
            CounselingRecord.appointment_id == appointment_id
        ).first()
        if record:
            record.session_notes = encrypted_notes
            record.progress_tracking = progress
        else:
            record = CounselingRecord(
                appointment_id=appointment_id,
                session_notes=encrypted_notes,
                progress_tracking=progress,
            )
            db.add(record)

        try:
            db.commit()
        except IntegrityError:
            # Concurrent first save for the same appointment; overwrite it
            db.rollback()
            record = db.query(CounselingRecord).filter(
                CounselingRecord.appointment_id == appointment_id
            ).one()
            record.session_notes = encrypted_notes
            record.progress_tracking = progress
            db.commit()
        db.refresh(record)
        logger.info(f"Counseling record saved for appointment {appointment_id} by counselor {counselor.id}")

        if progress is not None:
            notifier.notify(
                db,
                appointment.student_id,
                f'Your counselor left a progress note: "{progress}"'
            )
        return record

    @staticmethod
    def view(db: Session, appointment_id: int, user: User) -> Dict[str, Any]:
        """
        Decrypted record of an appointment for an admin or the assigned counselor.

        Returns:
            Dict with the appointment, decrypted session notes (None when no
            record exists yet) and progress tracking
        """
        appointment = RecordService._get_appointment(db, appointment_id)
        if user.role != UserRole.ADMIN and appointment.counselor_id != user.id:
            raise Forbidden("You are not authorized to view these records.")

        record = appointment.record
        session_notes = None
        progress_tracking = None
        if record is not None:
            session_notes = decrypt_data(record.session_notes)
            progress_tracking = record.progress_tracking

        return {
            "appointment": appointment,
            "session_notes": session_notes,
            "progress_tracking": progress_tracking,
            "updated_at": record.updated_at if record is not None else None,
        }
