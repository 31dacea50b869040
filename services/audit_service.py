"""
Audit trail for account security and appointment changes.
"""
from typing import Optional, Dict, Any, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import Request

from database.models import AuditLog
from core.logger import logger


def client_info(request: Optional[Request]) -> Tuple[Optional[str], Optional[str]]:
    """(ip_address, user_agent) of a request; both None without one."""
    if request is None:
        return None, None
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    if user_agent and len(user_agent) > 500:
        user_agent = user_agent[:500]
    return ip_address, user_agent


class AuditService:
    """Service for audit logging."""

    @staticmethod
    def log_action(
        db: Session,
        action: str,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> Optional[AuditLog]:
        """
        Record an action in the audit log.

        Args:
            db: Database session
            action: Action name (e.g., "login_failed", "appointment_approve")
            user_id: Acting user, if known
            resource_type: Type of resource (e.g., "user", "appointment")
            resource_id: ID of resource
            ip_address: IP address
            user_agent: User agent string
            details: Additional details

        Returns:
            Created AuditLog, or None if it could not be written
        """
        audit_log = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details
        )
        try:
            db.add(audit_log)
            db.commit()
            db.refresh(audit_log)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to write audit log '{action}': {e}")
            return None
        return audit_log

    @staticmethod
    def log_from_request(
        db: Session,
        request: Request,
        action: str,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> Optional[AuditLog]:
        """Record an action, taking IP address and user agent from the request."""
        ip_address, user_agent = client_info(request)

        return AuditService.log_action(
            db=db,
            action=action,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details
        )
