from datetime import datetime

import pytest
from sqlalchemy import event

from core.exceptions import AlreadySubmitted, NotEligible, ValidationError
from database.models import Appointment, AppointmentStatus, Feedback, UserRole
from services.feedback_service import FeedbackService


@pytest.fixture
def make_appointment(db):
    def _make(student, counselor, status=AppointmentStatus.COMPLETED, hour=10):
        appointment = Appointment(
            student_id=student.id,
            counselor_id=counselor.id,
            date_time=datetime(2030, 1, 1, hour, 0),
            reason="Stress",
            status=status,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make


def test_submit_feedback_for_completed_appointment(db, student, counselor, make_appointment):
    appointment = make_appointment(student, counselor)

    feedback = FeedbackService.submit(db, appointment.id, student, 5, "  Very helpful  ")

    assert feedback.rating == 5
    assert feedback.comment == "Very helpful"
    assert feedback.counselor_id == counselor.id
    assert feedback.student_id == student.id


def test_blank_comment_is_stored_as_none(db, student, counselor, make_appointment):
    appointment = make_appointment(student, counselor)
    feedback = FeedbackService.submit(db, appointment.id, student, 3, "   ")
    assert feedback.comment is None


def test_second_submission_is_rejected(db, student, counselor, make_appointment):
    appointment = make_appointment(student, counselor)
    FeedbackService.submit(db, appointment.id, student, 4)

    with pytest.raises(AlreadySubmitted) as exc:
        FeedbackService.submit(db, appointment.id, student, 2)
    assert exc.value.status_code == 409
    assert db.query(Feedback).count() == 1


@pytest.mark.parametrize("rating", [0, 6, -1, True, "5", 4.5, None])
def test_invalid_ratings_are_rejected(db, student, counselor, make_appointment, rating):
    appointment = make_appointment(student, counselor)

    with pytest.raises(ValidationError):
        FeedbackService.submit(db, appointment.id, student, rating)
    assert db.query(Feedback).count() == 0


@pytest.mark.parametrize("status", [
    AppointmentStatus.PENDING, AppointmentStatus.APPROVED, AppointmentStatus.CANCELED
])
def test_unfinished_appointments_are_not_eligible(db, student, counselor, make_appointment, status):
    appointment = make_appointment(student, counselor, status=status)

    with pytest.raises(NotEligible):
        FeedbackService.submit(db, appointment.id, student, 5)


def test_other_students_appointment_is_not_eligible(db, student, counselor, make_user, make_appointment):
    appointment = make_appointment(student, counselor)
    other_student = make_user(UserRole.STUDENT)

    with pytest.raises(NotEligible):
        FeedbackService.submit(db, appointment.id, other_student, 5)
    with pytest.raises(NotEligible):
        FeedbackService.submit(db, 9999, student, 5)


def test_list_for_counselor_averages_ratings(db, student, counselor, make_user, make_appointment):
    other_counselor = make_user(UserRole.COUNSELOR)
    for hour, rating in ((9, 5), (10, 4), (11, 4)):
        appointment = make_appointment(student, counselor, hour=hour)
        FeedbackService.submit(db, appointment.id, student, rating)
    elsewhere = make_appointment(student, other_counselor, hour=12)
    FeedbackService.submit(db, elsewhere.id, student, 1)

    result = FeedbackService.list_for_counselor(db, counselor.id)

    assert len(result["feedbacks"]) == 3
    assert result["average_rating"] == 4.33


def test_list_for_counselor_without_feedback(db, counselor):
    result = FeedbackService.list_for_counselor(db, counselor.id)
    assert result == {"feedbacks": [], "average_rating": None}


def test_feedback_that_loses_the_race_is_already_submitted(db, database, student, counselor, make_appointment):
    appointment_id = make_appointment(student, counselor).id
    student_id, counselor_id = student.id, counselor.id

    @event.listens_for(db, "before_flush", once=True)
    def other_tab_submits_first(session, flush_context, instances):
        # Commits after our duplicate check passed and before our insert
        with database.get_session() as other:
            other.add(Feedback(
                appointment_id=appointment_id, student_id=student_id,
                counselor_id=counselor_id, rating=2
            ))

    with pytest.raises(AlreadySubmitted):
        FeedbackService.submit(db, appointment_id, student, 5)

    assert [f.rating for f in db.query(Feedback).all()] == [2]


def test_counselor_overview(db, student, counselor, make_user, make_appointment):
    rated_low = make_user(UserRole.COUNSELOR)
    unrated = make_user(UserRole.COUNSELOR)
    for hour, rating in ((9, 5), (10, 4)):
        FeedbackService.submit(db, make_appointment(student, counselor, hour=hour).id, student, rating)
    FeedbackService.submit(db, make_appointment(student, rated_low, hour=11).id, student, 2)

    overview = FeedbackService.counselor_overview(db)

    assert [(item["counselor"].id, item["average_rating"], item["total_ratings"]) for item in overview] == [
        (counselor.id, 4.5, 2),
        (rated_low.id, 2.0, 1),
        (unrated.id, None, 0),
    ]
