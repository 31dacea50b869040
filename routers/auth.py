"""
Authentication endpoints: registration, login with progressive lockout, logout.
"""
from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr
from typing import Optional

from database.models import User
from auth.dependencies import get_db_session, get_current_user, get_notifier
from services.auth_service import AuthService
from services.audit_service import AuditService, client_info
from services.notification_service import NotificationDispatcher
from routers.users import UserResponse, user_to_response
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])


# Request Models
class RegisterRequest(BaseModel):
    """Student self-registration request."""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: EmailStr
    password: str
    gender: Optional[str] = None
    studentId: Optional[str] = None
    termsAgreed: bool = False


class LoginRequest(BaseModel):
    """Login request."""
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Login response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class LogoutResponse(BaseModel):
    """Logout response."""
    success: bool


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """
    Create a student account.
    Public. The role is always student.
    """
    user = AuthService.register_student(
        db,
        email=payload.email,
        password=payload.password,
        first_name=payload.firstName,
        last_name=payload.lastName,
        gender=payload.gender,
        student_id=payload.studentId,
        terms_agreed=payload.termsAgreed,
    )

    AuditService.log_from_request(
        db=db,
        request=request,
        action="register",
        user_id=user.id,
        resource_type="user",
        resource_id=str(user.id)
    )

    return user_to_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    notifier: NotificationDispatcher = Depends(get_notifier)
):
    """
    Login with email + password.
    Returns a JWT access token and user info.
    """
    ip_address, user_agent = client_info(request)
    user = AuthService.authenticate_user(
        db,
        notifier,
        email=credentials.email,
        password=credentials.password,
        ip_address=ip_address,
        user_agent=user_agent
    )

    access_token = AuthService.create_token(user)

    AuditService.log_action(
        db=db,
        action="login",
        user_id=user.id,
        resource_type="user",
        resource_id=str(user.id),
        ip_address=ip_address,
        user_agent=user_agent
    )

    return TokenResponse(
        access_token=access_token,
        expires_in=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=user_to_response(user)
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Logout. Tokens are stateless; the client discards its token.
    """
    AuditService.log_from_request(
        db=db,
        request=request,
        action="logout",
        user_id=current_user.id,
        resource_type="user",
        resource_id=str(current_user.id)
    )

    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    """Current user."""
    return user_to_response(current_user)
