"""
QA Hub
Notification Service.

Creates and queries in-app notifications. The execution workflow calls
``notify_assignment_created`` after a manager assigns a test; delivery
beyond the notifications table happens elsewhere.

Transaction policy: flush only. The route handler owns the commit.
"""

import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, tenant_id, recipient_id, title, message="", category="system",
               entity_type="", entity_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (flushed, not committed).
        """
        notif = Notification(
            tenant_id=tenant_id,
            recipient_id=recipient_id,
            title=title,
            message=message,
            category=category,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def notify_assignment_created(assignment, test_title=""):
        """
        Tell the assignee a test was assigned to them.

        Fire-and-forget: the insert runs inside a SAVEPOINT so a failure
        rolls back only the notification, never the assignment itself.

        Returns:
            The Notification, or None when disabled or when the insert failed.
        """
        if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
            return None
        if assignment.assigned_by_id == assignment.assignee_id:
            return None

        title = f"New test assigned: {test_title}" if test_title else "New test assigned"
        message = "You have been assigned a test to execute."
        if assignment.due_date:
            message += f" Due {assignment.due_date.isoformat()}."

        try:
            with db.session.begin_nested():
                return NotificationService.create(
                    tenant_id=assignment.tenant_id,
                    recipient_id=assignment.assignee_id,
                    title=title[:300],
                    message=message,
                    category="assignment",
                    entity_type="test_assignment",
                    entity_id=assignment.id,
                )
        except SQLAlchemyError:
            logger.warning(
                "Assignment notification failed for assignment %s", assignment.id,
                exc_info=True,
            )
            return None

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(tenant_id, recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(tenant_id=tenant_id, recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = q.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def unread_count(tenant_id, recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(
            tenant_id=tenant_id, recipient_id=recipient_id, is_read=False,
        ).count()
