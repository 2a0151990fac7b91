"""
Soft Delete Mixin: tombstones instead of hard deletes.

Assignments and tests are never physically removed: removal stamps
``deleted_at`` (and who did it), and every workflow read goes through
``query_active()`` so tombstoned rows disappear from listings, rollups
and the one-active-assignment-per-pair check.

Usage:
    class TestAssignment(SoftDeleteMixin, db.Model):
        ...

    assignment.soft_delete(deleted_by_id=caller.user_id)
    db.session.flush()

    TestAssignment.query_active().filter_by(test_id=7).all()
"""

from datetime import datetime, timezone

from app.models import db


class SoftDeleteMixin:
    """Adds a ``deleted_at`` tombstone plus an active-rows query helper."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)
    deleted_by_id = db.Column(db.Integer, nullable=True, comment="User who tombstoned the row")

    def soft_delete(self, deleted_by_id=None):
        """Tombstone this record. Calling twice keeps the first timestamp."""
        if self.deleted_at is None:
            self.deleted_at = datetime.now(timezone.utc)
            self.deleted_by_id = deleted_by_id

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls, **filters):
        """Non-tombstoned rows, optionally narrowed with ``filter_by`` kwargs."""
        q = cls.query.filter(cls.deleted_at.is_(None))
        if filters:
            q = q.filter_by(**filters)
        return q
