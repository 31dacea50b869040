"""
Authentication service: account creation, the login guard and password changes.
"""
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import User, UserRole
from auth.security import (
    verify_password, get_password_hash, validate_password, create_access_token
)
from core.exceptions import (
    ValidationError, InvalidCredentials, AccountDeactivated, PermanentlyLocked,
    TemporarilyThrottled, DuplicateAccount
)
from core.logger import logger
from core.utils import utcnow, seconds_until
from core.validators import normalize_email, clean_text
from services.audit_service import AuditService
import config

LOCKED_MESSAGE = (
    "Your account has been locked due to too many failed login attempts. "
    "Please contact an administrator."
)
THROTTLED_MESSAGE = "Too many failed attempts. Please try again in {seconds} seconds."


class AuthService:
    """Service for authentication operations with progressive lockout."""

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: str,
        role: UserRole,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        gender: Optional[str] = None,
        student_id: Optional[str] = None,
        require_student_id: bool = False,
    ) -> User:
        """
        Create a new user. The password is hashed here, never by the caller.

        Args:
            db: Database session
            email: Email address, also used as the username
            password: Plain text password
            role: User role
            first_name: First name
            last_name: Last name
            gender: Gender
            student_id: Institutional student number (students only)
            require_student_id: Reject students created without a student number

        Returns:
            Created User

        Raises:
            ValidationError: Missing email, weak password or missing student number
            DuplicateAccount: Email already registered
        """
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required.")

        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise ValidationError(error_message)

        student_id = clean_text(student_id, 50) if role == UserRole.STUDENT else None
        if require_student_id and role == UserRole.STUDENT and student_id is None:
            raise ValidationError("Student ID is required for students.")

        existing = db.query(User).filter(User.email == email).first()
        if existing:
            raise DuplicateAccount()

        user = User(
            email=email,
            username=email,
            hashed_password=get_password_hash(password),
            role=role,
            first_name=clean_text(first_name, 100),
            last_name=clean_text(last_name, 100),
            gender=clean_text(gender, 20),
            student_id=student_id,
            is_active=True,
            password_changed_at=utcnow(),
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            db.rollback()
            raise DuplicateAccount()
        db.refresh(user)
        logger.info(f"Created user: {email} (role: {role.value})")
        return user

    @staticmethod
    def register_student(
        db: Session,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        gender: Optional[str] = None,
        student_id: Optional[str] = None,
        terms_agreed: bool = False,
    ) -> User:
        """Self-registration. Always creates a student account."""
        if not terms_agreed:
            raise ValidationError("You must agree to the Terms and Conditions to create an account.")
        return AuthService.create_user(
            db,
            email=email,
            password=password,
            role=UserRole.STUDENT,
            first_name=first_name,
            last_name=last_name,
            gender=gender,
            student_id=student_id,
        )

    @staticmethod
    def authenticate_user(
        db: Session,
        notifier,
        email: str,
        password: str,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """
        Authenticate a user against the progressive lockout policy.

        Order of checks: unknown email, deactivated, permanently locked,
        temporarily throttled, then the password itself. Only a wrong
        password counts as a failed attempt.

        Args:
            db: Database session
            notifier: NotificationDispatcher used to alert admins on lock
            email: Email address
            password: Plain text password
            now: Current time (naive UTC); defaults to the wall clock
            ip_address: IP address for the audit log
            user_agent: User agent for the audit log

        Returns:
            Authenticated User

        Raises:
            InvalidCredentials: Unknown email or wrong password
            AccountDeactivated: Account deactivated by an admin
            PermanentlyLocked: Account locked after repeated failures
            TemporarilyThrottled: Inside a throttle window
        """
        now = now or utcnow()
        email = normalize_email(email)

        user = AuthService.get_user_by_email(db, email)
        if not user:
            logger.warning(f"Login attempt for unknown email: {email}")
            raise InvalidCredentials()

        if not user.is_active:
            logger.warning(f"Login attempt for deactivated account: {email}")
            raise AccountDeactivated()

        if user.is_locked:
            logger.warning(f"Login attempt for locked account: {email}")
            raise PermanentlyLocked()

        if user.lockout_until and user.lockout_until > now:
            retry_after = seconds_until(user.lockout_until, now)
            logger.warning(f"Login attempt for throttled account: {email} ({retry_after}s left)")
            raise TemporarilyThrottled(retry_after)

        if verify_password(password, user.hashed_password):
            user.failed_login_attempts = 0
            user.lockout_until = None
            user.last_login = now
            db.commit()
            logger.info(f"User logged in: {email}")
            return user

        message = AuthService._register_failure(db, notifier, user, now, ip_address, user_agent)
        raise InvalidCredentials(message)

    @staticmethod
    def _register_failure(
        db: Session,
        notifier,
        user: User,
        now: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> str:
        """Count a wrong password and apply the lockout thresholds. Returns the error message."""
        # Single UPDATE so concurrent failures cannot lose an increment
        db.query(User).filter(User.id == user.id).update(
            {User.failed_login_attempts: User.failed_login_attempts + 1},
            synchronize_session=False
        )
        db.refresh(user)
        attempts = user.failed_login_attempts

        message = InvalidCredentials().message
        locked_now = False
        if attempts >= config.LOGIN_LOCK_ATTEMPTS:
            locked_now = not user.is_locked
            user.is_locked = True
            message = LOCKED_MESSAGE
        elif attempts == config.LOGIN_THROTTLE_LONG_ATTEMPTS:
            user.lockout_until = now + timedelta(seconds=config.LOGIN_THROTTLE_LONG_SECONDS)
            message = THROTTLED_MESSAGE.format(seconds=config.LOGIN_THROTTLE_LONG_SECONDS)
        elif attempts == config.LOGIN_THROTTLE_SHORT_ATTEMPTS:
            user.lockout_until = now + timedelta(seconds=config.LOGIN_THROTTLE_SHORT_SECONDS)
            message = THROTTLED_MESSAGE.format(seconds=config.LOGIN_THROTTLE_SHORT_SECONDS)
        db.commit()

        logger.warning(f"Failed login for {user.email} (attempt {attempts})")
        AuditService.log_action(
            db,
            action="login_failed",
            user_id=user.id,
            resource_type="user",
            resource_id=str(user.id),
            ip_address=ip_address,
            user_agent=user_agent,
            details={"failed_login_attempts": attempts},
        )

        if locked_now:
            logger.warning(f"Account locked due to too many failed attempts: {user.email}")
            AuditService.log_action(
                db,
                action="account_locked",
                user_id=user.id,
                resource_type="user",
                resource_id=str(user.id),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            notifier.notify_admins(
                db,
                f"User account for {user.email} has been locked due to multiple failed login attempts."
            )

        return message

    @staticmethod
    def create_token(user: User) -> str:
        """Signed access token carrying the user id and role."""
        data = {
            "sub": str(user.id),
            "role": user.role.value,
        }
        return create_access_token(data, config.SECRET_KEY)

    @staticmethod
    def change_password(
        db: Session,
        user: User,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> User:
        """
        Change a user's own password.

        Raises:
            ValidationError: Wrong current password, mismatch or weak password
        """
        if not verify_password(current_password or "", user.hashed_password):
            raise ValidationError("Incorrect current password.")

        if new_password != confirm_password:
            raise ValidationError("New passwords do not match.")

        is_valid, error_message = validate_password(new_password)
        if not is_valid:
            raise ValidationError(error_message)

        user.hashed_password = get_password_hash(new_password)
        user.password_changed_at = utcnow()
        db.commit()
        logger.info(f"Password changed for user: {user.email}")
        return user

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email."""
        return db.query(User).filter(User.email == normalize_email(email)).first()
