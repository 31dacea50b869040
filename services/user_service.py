"""
User administration and self-service profile updates.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from database.models import User, UserRole
from core.exceptions import NotFoundError, CannotModifyAdmin
from core.logger import logger
from core.utils import utcnow
from core.validators import clean_text


class UserService:
    """Admin operations on accounts plus the owner's profile edits."""

    @staticmethod
    def _get_target(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found.")
        return user

    @staticmethod
    def _get_non_admin(db: Session, user_id: int) -> User:
        user = UserService._get_target(db, user_id)
        if user.role == UserRole.ADMIN:
            raise CannotModifyAdmin()
        return user

    @staticmethod
    def list_users(db: Session) -> List[User]:
        """All student and counselor accounts, newest first."""
        return (
            db.query(User)
            .filter(User.role != UserRole.ADMIN)
            .order_by(User.created_at.desc(), User.id.desc())
            .all()
        )

    @staticmethod
    def list_counselors(db: Session) -> List[User]:
        """Active counselors, for the booking form."""
        return (
            db.query(User)
            .filter(User.role == UserRole.COUNSELOR, User.is_active == True)
            .order_by(User.first_name, User.last_name, User.email)
            .all()
        )

    @staticmethod
    def unlock_user(db: Session, user_id: int) -> User:
        """
        Clear the permanent lock, the temporary throttle and the failure counter.
        Safe to call on an account that is not locked.
        """
        user = UserService._get_target(db, user_id)
        user.is_locked = False
        user.failed_login_attempts = 0
        user.lockout_until = None
        db.commit()
        logger.info(f"User account unlocked: {user.email}")
        return user

    @staticmethod
    def deactivate_user(db: Session, user_id: int) -> User:
        user = UserService._get_non_admin(db, user_id)
        user.is_active = False
        user.deactivated_at = utcnow()
        db.commit()
        logger.info(f"User account deactivated: {user.email}")
        return user

    @staticmethod
    def reactivate_user(db: Session, user_id: int) -> User:
        user = UserService._get_non_admin(db, user_id)
        user.is_active = True
        user.deactivated_at = None
        db.commit()
        logger.info(f"User account reactivated: {user.email}")
        return user

    @staticmethod
    def delete_user(db: Session, user_id: int) -> str:
        """
        Delete a non-admin account together with its appointments,
        records, feedback and notifications.

        Returns:
            Email of the deleted account
        """
        user = UserService._get_non_admin(db, user_id)
        email = user.email
        db.delete(user)
        db.commit()
        logger.info(f"User account deleted: {email}")
        return email

    @staticmethod
    def update_profile(
        db: Session,
        user: User,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        gender: Optional[str] = None,
        student_id: Optional[str] = None,
    ) -> User:
        """
        Update the owner's profile. Only supplied fields change;
        student_id is ignored for anyone but students.
        """
        if first_name is not None:
            user.first_name = clean_text(first_name, 100)
        if last_name is not None:
            user.last_name = clean_text(last_name, 100)
        if gender is not None:
            user.gender = clean_text(gender, 20)
        if student_id is not None and user.role == UserRole.STUDENT:
            user.student_id = clean_text(student_id, 50)
        db.commit()
        db.refresh(user)
        logger.info(f"Profile updated: {user.email}")
        return user
