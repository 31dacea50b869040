"""
User Management APIs (Admin).
"""
from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr
from typing import Optional, List

from database.models import User, UserRole
from auth.dependencies import get_db_session, require_admin
from core.exceptions import ValidationError
from services.auth_service import AuthService
from services.user_service import UserService
from services.audit_service import AuditService


router = APIRouter(prefix="/api/users", tags=["users"])

ADMIN_CREATABLE_ROLES = (UserRole.STUDENT, UserRole.COUNSELOR)


# Request/Response Models
class UserCreate(BaseModel):
    """Create user request."""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: EmailStr
    password: str
    gender: Optional[str] = None
    role: str
    studentId: Optional[str] = None


class UserResponse(BaseModel):
    """User response model."""
    id: int
    email: str
    username: str
    role: str
    firstName: Optional[str]
    lastName: Optional[str]
    gender: Optional[str]
    studentId: Optional[str]
    isActive: bool
    isLocked: bool
    failedLoginAttempts: int
    lockoutUntil: Optional[str]
    deactivatedAt: Optional[str]
    lastLogin: Optional[str]
    createdAt: str
    updatedAt: str


class UserListResponse(BaseModel):
    """User list response."""
    data: List[UserResponse]
    total: int


class UserActionResponse(BaseModel):
    success: bool
    message: str


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role.value,
        firstName=user.first_name,
        lastName=user.last_name,
        gender=user.gender,
        studentId=user.student_id,
        isActive=user.is_active,
        isLocked=user.is_locked,
        failedLoginAttempts=user.failed_login_attempts,
        lockoutUntil=_iso(user.lockout_until),
        deactivatedAt=_iso(user.deactivated_at),
        lastLogin=_iso(user.last_login),
        createdAt=user.created_at.isoformat(),
        updatedAt=user.updated_at.isoformat()
    )


@router.get("", response_model=UserListResponse)
async def list_users(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    List student and counselor accounts.
    Admin only.
    """
    users = UserService.list_users(db)
    return UserListResponse(
        data=[user_to_response(u) for u in users],
        total=len(users)
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Create a student or counselor account.
    Admin only. Students need a student ID.
    """
    try:
        role = UserRole(user_data.role)
    except ValueError:
        role = None
    if role not in ADMIN_CREATABLE_ROLES:
        raise ValidationError("Role must be student or counselor.")

    user = AuthService.create_user(
        db,
        email=user_data.email,
        password=user_data.password,
        role=role,
        first_name=user_data.firstName,
        last_name=user_data.lastName,
        gender=user_data.gender,
        student_id=user_data.studentId,
        require_student_id=True,
    )

    AuditService.log_from_request(
        db=db,
        request=request,
        action="user_create",
        user_id=current_user.id,
        resource_type="user",
        resource_id=str(user.id),
        details={"role": role.value}
    )

    return user_to_response(user)


@router.post("/{user_id}/unlock", response_model=UserActionResponse)
async def unlock_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Clear a lock or throttle on an account. Admin only."""
    user = UserService.unlock_user(db, user_id)

    AuditService.log_from_request(
        db=db,
        request=request,
        action="user_unlock",
        user_id=current_user.id,
        resource_type="user",
        resource_id=str(user_id)
    )

    return UserActionResponse(success=True, message=f"User account for {user.email} has been unlocked.")


@router.post("/{user_id}/deactivate", response_model=UserActionResponse)
async def deactivate_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Deactivate a non-admin account. Admin only."""
    user = UserService.deactivate_user(db, user_id)

    AuditService.log_from_request(
        db=db,
        request=request,
        action="user_deactivate",
        user_id=current_user.id,
        resource_type="user",
        resource_id=str(user_id)
    )

    return UserActionResponse(success=True, message=f"User account for {user.email} has been deactivated.")


@router.post("/{user_id}/reactivate", response_model=UserActionResponse)
async def reactivate_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Reactivate a non-admin account. Admin only."""
    user = UserService.reactivate_user(db, user_id)

    AuditService.log_from_request(
        db=db,
        request=request,
        action="user_reactivate",
        user_id=current_user.id,
        resource_type="user",
        resource_id=str(user_id)
    )

    return UserActionResponse(success=True, message=f"User account for {user.email} has been reactivated.")


@router.delete("/{user_id}", response_model=UserActionResponse)
async def delete_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Permanently delete a non-admin account and everything attached to it.
    Admin only.
    """
    email = UserService.delete_user(db, user_id)

    AuditService.log_from_request(
        db=db,
        request=request,
        action="user_delete",
        user_id=current_user.id,
        resource_type="user",
        resource_id=str(user_id),
        details={"email": email}
    )

    return UserActionResponse(success=True, message=f"User {email} has been deleted.")
