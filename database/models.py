"""
Database models for the counseling appointment service.
"""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    ForeignKey, JSON, Index, TypeDecorator, text
)
from sqlalchemy.orm import declarative_base, relationship
import enum

from core.utils import utcnow

Base = declarative_base()


# ============================================================================
# Custom Type Decorator for Enum Values
# ============================================================================

class EnumValue(TypeDecorator):
    """Type decorator to ensure enum values (not names) are stored."""
    impl = String
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        """Convert enum to its value when writing to database."""
        if value is None:
            return None
        if isinstance(value, enum.Enum):
            return value.value
        return value

    def process_result_value(self, value, dialect):
        """Convert database value back to enum when reading."""
        if value is None:
            return None
        return self.enum_class(value)


# ============================================================================
# Enums - Must be defined before models that use them
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles for authorization."""
    STUDENT = "student"
    COUNSELOR = "counselor"
    ADMIN = "admin"


class AppointmentStatus(str, enum.Enum):
    """Appointment lifecycle status."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELED = "canceled"


# Every status must appear as a key; completed and canceled are terminal.
APPOINTMENT_TRANSITIONS = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.APPROVED, AppointmentStatus.CANCELED}),
    AppointmentStatus.APPROVED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELED: frozenset(),
}

# Statuses that hold a counselor's time slot
ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.APPROVED)


class NotificationStatus(str, enum.Enum):
    """Notification read state."""
    UNREAD = "unread"
    READ = "read"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """User model for authentication, authorization and account security."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    username = Column(String(255), unique=True, nullable=False)  # Defaults to the email
    hashed_password = Column(String(255), nullable=False)
    role = Column(EnumValue(UserRole, 20), nullable=False, default=UserRole.STUDENT)

    # Profile
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    gender = Column(String(20), nullable=True)
    student_id = Column(String(50), nullable=True)  # Students only

    # Account security
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    is_locked = Column(Boolean, default=False, nullable=False)  # Permanent lock, admin unlock only
    lockout_until = Column(DateTime, nullable=True)  # Temporary throttle
    is_active = Column(Boolean, default=True, nullable=False)
    deactivated_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    # Relationships
    student_appointments = relationship(
        "Appointment", back_populates="student", foreign_keys="Appointment.student_id",
        cascade="all, delete-orphan", passive_deletes=True
    )
    counselor_appointments = relationship(
        "Appointment", back_populates="counselor", foreign_keys="Appointment.counselor_id",
        cascade="all, delete-orphan", passive_deletes=True
    )
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index('idx_user_email', 'email'),
        Index('idx_user_role', 'role'),
    )


class Appointment(Base):
    """A booking between one student and one counselor."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    counselor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date_time = Column(DateTime, nullable=False)
    status = Column(EnumValue(AppointmentStatus, 20), default=AppointmentStatus.PENDING, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    student = relationship("User", back_populates="student_appointments", foreign_keys=[student_id])
    counselor = relationship("User", back_populates="counselor_appointments", foreign_keys=[counselor_id])
    record = relationship("CounselingRecord", back_populates="appointment", uselist=False, cascade="all, delete-orphan", passive_deletes=True)
    feedback = relationship("Feedback", back_populates="appointment", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index('idx_appointment_student', 'student_id'),
        Index('idx_appointment_counselor', 'counselor_id'),
        Index('idx_appointment_status', 'status'),
        # One active booking per counselor slot; storage-level guard for concurrent bookings
        Index(
            'uq_appointment_active_slot', 'counselor_id', 'date_time',
            unique=True,
            postgresql_where=text("status IN ('pending', 'approved')"),
            sqlite_where=text("status IN ('pending', 'approved')"),
        ),
    )


class Feedback(Base):
    """Student rating for a completed appointment; one per appointment."""
    __tablename__ = "feedbacks"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), unique=True, nullable=False)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    counselor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    appointment = relationship("Appointment", back_populates="feedback")
    student = relationship("User", foreign_keys=[student_id])

    __table_args__ = (
        Index('idx_feedback_counselor', 'counselor_id'),
    )


class CounselingRecord(Base):
    """Private session notes; session_notes holds Fernet ciphertext."""
    __tablename__ = "counseling_records"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), unique=True, nullable=False)
    session_notes = Column(Text, nullable=False)
    progress_tracking = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    appointment = relationship("Appointment", back_populates="record")


class Notification(Base):
    """Durable notification, surfaced on next page load."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(EnumValue(NotificationStatus, 10), default=NotificationStatus.UNREAD, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index('idx_notification_user_status', 'user_id', 'status'),
        Index('idx_notification_created', 'created_at'),
    )


class AuditLog(Base):
    """Audit log for security and compliance."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)  # e.g., "login", "appointment_approve", "user_unlock"
    resource_type = Column(String(50), nullable=True)  # e.g., "user", "appointment"
    resource_id = Column(String(100), nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 compatible
    user_agent = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_user', 'user_id'),
        Index('idx_audit_action', 'action'),
    )
