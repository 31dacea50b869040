"""
Authentication dependencies for FastAPI.
"""
from typing import Optional
from fastapi import Depends, HTTPException, Request, status, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database.models import User, UserRole
from auth.security import security, decode_access_token
from services.notification_service import NotificationDispatcher
import config


def get_db_session():
    """Get database session."""
    if not config.db:
        raise HTTPException(status_code=503, detail="Database not initialized")
    with config.db.get_session() as session:
        yield session


def get_notifier(request: Request) -> NotificationDispatcher:
    """Notification dispatcher created at startup."""
    return request.app.state.notifier


def resolve_user_from_token(token: str, db: Session) -> Optional[User]:
    """
    Decode an access token and load its active user.

    Returns None for invalid tokens, unknown users and deactivated accounts.
    """
    payload = decode_access_token(token, config.SECRET_KEY)
    if payload is None:
        return None

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        return None

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    db: Session = Depends(get_db_session)
) -> User:
    """
    Get current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        Current user

    Raises:
        HTTPException: If authentication fails
    """
    payload = decode_access_token(credentials.credentials, config.SECRET_KEY)
    subject = payload.get("sub") if payload else None
    if subject is None or not str(subject).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return user


def require_role(allowed_roles: list[str]):
    """
    Dependency factory for role-based access control.

    Args:
        allowed_roles: List of allowed roles

    Returns:
        Dependency function
    """
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role.value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN.value])
require_counselor = require_role([UserRole.COUNSELOR.value])
require_student = require_role([UserRole.STUDENT.value])
require_counselor_or_admin = require_role([UserRole.COUNSELOR.value, UserRole.ADMIN.value])
require_student_or_counselor = require_role([UserRole.STUDENT.value, UserRole.COUNSELOR.value])
