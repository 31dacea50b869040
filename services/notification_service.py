"""
Notification dispatch: durable inbox row plus best-effort real-time push.
"""
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import Notification, NotificationStatus, User, UserRole
from core.logger import logger
import config


class NotificationDispatcher:
    """
    Persists notifications and forwards them to the push channel.

    Callers commit their own state change first; a failure here never
    undoes it.
    """

    def __init__(self, push_channel):
        self.push_channel = push_channel

    def notify(self, db: Session, user_id: int, message: str) -> Optional[Notification]:
        """
        Store an unread notification for a user and push it if they are online.

        Returns:
            The stored Notification, or None if it could not be persisted
        """
        notification = Notification(
            user_id=user_id,
            message=message,
            status=NotificationStatus.UNREAD
        )
        try:
            db.add(notification)
            db.commit()
            db.refresh(notification)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store notification for user {user_id}: {e}")
            return None

        self._push(user_id, message)
        return notification

    def notify_many(self, db: Session, user_ids: Iterable[int], message: str) -> int:
        """Notify several users; returns how many notifications were stored."""
        stored = 0
        for user_id in user_ids:
            if self.notify(db, user_id, message) is not None:
                stored += 1
        return stored

    def notify_admins(self, db: Session, message: str) -> int:
        admin_ids = [
            row.id for row in db.query(User.id).filter(User.role == UserRole.ADMIN).all()
        ]
        if not admin_ids:
            logger.warning("No admin accounts to notify")
            return 0
        return self.notify_many(db, admin_ids, message)

    def list_unread(self, db: Session, user_id: int, limit: int = None) -> List[Notification]:
        """Unread notifications for a user, newest first."""
        if limit is None:
            limit = config.NOTIFICATION_LIST_LIMIT
        return (
            db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.status == NotificationStatus.UNREAD
            )
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    def mark_all_read(self, db: Session, user_id: int) -> int:
        """Flip every unread notification of a user to read. Returns the count."""
        count = (
            db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.status == NotificationStatus.UNREAD
            )
            .update({Notification.status: NotificationStatus.READ}, synchronize_session=False)
        )
        db.commit()
        logger.info(f"Marked {count} notifications read for user {user_id}")
        return count

    def _push(self, user_id: int, message: str) -> None:
        try:
            self.push_channel.publish(user_id, message)
        except Exception as e:
            logger.warning(f"Push delivery to user {user_id} failed: {e}")
