"""
Domain errors raised by the service layer.

Every error carries a user-facing message and the HTTP status the API
answers with. Routers let these propagate; app.py turns them into JSON.
"""
from typing import Optional, Dict


class CounselingError(Exception):
    """Base class for all domain errors."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(CounselingError):
    """Malformed or missing input. User-correctable."""
    status_code = 400


class PastDateError(ValidationError):
    def __init__(self, message: str = "You cannot book an appointment in the past."):
        super().__init__(message)


class AuthenticationError(CounselingError):
    status_code = 401


class InvalidCredentials(AuthenticationError):
    def __init__(self, message: str = "Invalid email or password."):
        super().__init__(message)


class AuthorizationError(CounselingError):
    """Wrong role or wrong owner. Not retryable."""
    status_code = 403


class Forbidden(AuthorizationError):
    pass


class NotEligible(AuthorizationError):
    def __init__(self, message: str = "Feedback can only be submitted for your own completed appointments."):
        super().__init__(message)


class CannotModifyAdmin(AuthorizationError):
    def __init__(self, message: str = "Cannot modify admin accounts."):
        super().__init__(message)


class AccountDeactivated(AuthorizationError):
    def __init__(self, message: str = "Your account has been deactivated. Please contact an administrator."):
        super().__init__(message)


class NotFoundOrForbidden(AuthorizationError):
    """Collapses 'missing' and 'not yours' so other counselors' appointments stay invisible."""
    status_code = 404


class NotFoundError(CounselingError):
    status_code = 404


class ConflictError(CounselingError):
    """Slot taken, feedback already given, duplicate account."""
    status_code = 409


class SlotUnavailable(ConflictError):
    def __init__(self, message: str = "This time slot is unavailable. Please choose a different time."):
        super().__init__(message)


class AlreadySubmitted(ConflictError):
    def __init__(self, message: str = "Feedback has already been submitted for this appointment."):
        super().__init__(message)


class DuplicateAccount(ConflictError):
    def __init__(self, message: str = "An account with this email already exists."):
        super().__init__(message)


class SecurityThrottleError(CounselingError):
    """Temporary throttle or permanent lock on an account."""
    status_code = 429


class TemporarilyThrottled(SecurityThrottleError):
    def __init__(self, retry_after: int):
        super().__init__(f"Too many failed attempts. Please try again in {retry_after} seconds.")
        self.retry_after = retry_after

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}


class PermanentlyLocked(SecurityThrottleError):
    status_code = 423

    def __init__(self, message: str = "Your account is locked. Please contact an administrator."):
        super().__init__(message)


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration detected at startup."""
