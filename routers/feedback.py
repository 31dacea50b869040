"""
Received feedback: the counselor's own list and the admin overview per counselor.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional, List

from database.models import User
from auth.dependencies import get_db_session, require_counselor, require_admin
from core.utils import display_name
from services.feedback_service import FeedbackService


router = APIRouter(prefix="/api/feedback", tags=["feedback"])


class ReceivedFeedback(BaseModel):
    id: int
    appointmentId: int
    appointmentDateTime: str
    studentName: str
    rating: int
    comment: Optional[str]
    createdAt: str


class MyFeedbackResponse(BaseModel):
    data: List[ReceivedFeedback]
    total: int
    averageRating: Optional[float]


class CounselorRating(BaseModel):
    counselorId: int
    counselorName: str
    email: str
    isActive: bool
    averageRating: Optional[float]
    totalRatings: int


class FeedbackOverviewResponse(BaseModel):
    data: List[CounselorRating]
    total: int


@router.get("/mine", response_model=MyFeedbackResponse)
async def my_feedback(
    current_user: User = Depends(require_counselor),
    db: Session = Depends(get_db_session)
):
    """Feedback left for the calling counselor, with the average rating."""
    result = FeedbackService.list_for_counselor(db, current_user.id)
    feedbacks = result["feedbacks"]
    return MyFeedbackResponse(
        data=[
            ReceivedFeedback(
                id=f.id,
                appointmentId=f.appointment_id,
                appointmentDateTime=f.appointment.date_time.isoformat(),
                studentName=display_name(f.student),
                rating=f.rating,
                comment=f.comment,
                createdAt=f.created_at.isoformat()
            )
            for f in feedbacks
        ],
        total=len(feedbacks),
        averageRating=result["average_rating"]
    )


@router.get("/overview", response_model=FeedbackOverviewResponse)
async def feedback_overview(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Average rating and rating count per counselor.
    Admin only. Unrated counselors are listed last.
    """
    overview = FeedbackService.counselor_overview(db)
    return FeedbackOverviewResponse(
        data=[
            CounselorRating(
                counselorId=item["counselor"].id,
                counselorName=display_name(item["counselor"]),
                email=item["counselor"].email,
                isActive=item["counselor"].is_active,
                averageRating=item["average_rating"],
                totalRatings=item["total_ratings"]
            )
            for item in overview
        ],
        total=len(overview)
    )
