"""
Own profile and password (all authenticated users).
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from database.models import User
from auth.dependencies import get_db_session, get_current_user
from services.auth_service import AuthService
from services.user_service import UserService
from services.audit_service import AuditService
from routers.users import UserResponse, user_to_response


router = APIRouter(prefix="/api/profile", tags=["profile"])


class ProfileUpdate(BaseModel):
    """Update profile request. Omitted fields are left unchanged."""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    gender: Optional[str] = None
    studentId: Optional[str] = None  # Students only; ignored for other roles


class PasswordChange(BaseModel):
    currentPassword: str
    newPassword: str
    confirmPassword: str


@router.get("", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get own profile."""
    return user_to_response(current_user)


@router.put("", response_model=UserResponse)
@router.patch("", response_model=UserResponse)
async def update_profile(
    profile_data: ProfileUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Update own profile (PUT or PATCH).
    All authenticated users.
    """
    user = UserService.update_profile(
        db,
        current_user,
        first_name=profile_data.firstName,
        last_name=profile_data.lastName,
        gender=profile_data.gender,
        student_id=profile_data.studentId,
    )

    AuditService.log_from_request(
        db=db,
        request=request,
        action="profile_update",
        user_id=user.id,
        resource_type="user",
        resource_id=str(user.id)
    )

    return user_to_response(user)


@router.post("/password")
async def change_password(
    password_data: PasswordChange,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Change own password. The current password is required."""
    AuthService.change_password(
        db,
        current_user,
        current_password=password_data.currentPassword,
        new_password=password_data.newPassword,
        confirm_password=password_data.confirmPassword,
    )

    AuditService.log_from_request(
        db=db,
        request=request,
        action="password_change",
        user_id=current_user.id,
        resource_type="user",
        resource_id=str(current_user.id)
    )

    return {"success": True, "message": "Password changed successfully."}
