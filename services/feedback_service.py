"""
Feedback on completed appointments.
"""
from typing import Dict, Any, List, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from database.models import Appointment, AppointmentStatus, Feedback, User, UserRole
from core.exceptions import ValidationError, NotEligible, AlreadySubmitted
from core.logger import logger
from core.validators import validate_rating, clean_text


class FeedbackService:

    @staticmethod
    def submit(
        db: Session,
        appointment_id: int,
        student: User,
        rating: Any,
        comment: Optional[str] = None,
    ) -> Feedback:
        """
        Attach a rating (and optional comment) to the student's own completed
        appointment. One submission per appointment.

        Raises:
            ValidationError: Rating outside 1-5 or not a whole number
            NotEligible: Not the student's appointment, or not completed
            AlreadySubmitted: Feedback already exists
        """
        is_valid, error_message = validate_rating(rating)
        if not is_valid:
            raise ValidationError(error_message)

        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.student_id == student.id,
            Appointment.status == AppointmentStatus.COMPLETED
        ).first()
        if not appointment:
            raise NotEligible()

        existing = db.query(Feedback.id).filter(Feedback.appointment_id == appointment_id).first()
        if existing:
            raise AlreadySubmitted()

        feedback = Feedback(
            appointment_id=appointment.id,
            student_id=student.id,
            counselor_id=appointment.counselor_id,
            rating=rating,
            comment=clean_text(comment),
        )
        db.add(feedback)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise AlreadySubmitted()
        db.refresh(feedback)
        logger.info(f"Feedback {feedback.id} submitted for appointment {appointment_id} (rating {rating})")
        return feedback

    @staticmethod
    def list_for_counselor(db: Session, counselor_id: int) -> Dict[str, Any]:
        """Feedback received by a counselor, newest first, with the average rating."""
        feedbacks = (
            db.query(Feedback)
            .options(joinedload(Feedback.student), joinedload(Feedback.appointment))
            .filter(Feedback.counselor_id == counselor_id)
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
            .all()
        )
        average = None
        if feedbacks:
            average = round(sum(f.rating for f in feedbacks) / len(feedbacks), 2)
        return {"feedbacks": feedbacks, "average_rating": average}

    @staticmethod
    def counselor_overview(db: Session) -> List[Dict[str, Any]]:
        """
        Rating summary for every counselor, for the admin overview.

        Returns:
            Dicts with counselor, average_rating (None without ratings) and
            total_ratings, highest average first and unrated counselors last
        """
        rows = (
            db.query(
                User,
                func.avg(Feedback.rating).label("average_rating"),
                func.count(Feedback.id).label("total_ratings"),
            )
            .outerjoin(Feedback, Feedback.counselor_id == User.id)
            .filter(User.role == UserRole.COUNSELOR)
            .group_by(User.id)
            .all()
        )
        overview = [
            {
                "counselor": counselor,
                "average_rating": round(float(average), 2) if average is not None else None,
                "total_ratings": total,
            }
            for counselor, average, total in rows
        ]
        overview.sort(key=lambda item: (
            item["average_rating"] is None,
            -(item["average_rating"] or 0),
            item["counselor"].id,
        ))
        return overview
