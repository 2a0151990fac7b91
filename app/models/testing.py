"""
QA Hub
Testing domain models: test definitions and their execution assignments.

Models:
    - Test:               test definition (ordered steps, status, priority) owned by a tenant
    - TestAssignment:     one execution attempt of a Test by one assignee, carrying the step ledger
    - AssignmentAttempt:  append-only archive of a ledger discarded by Reassign

Architecture ref:
    Tenant ──1:N──▶ Test ──1:N──▶ TestAssignment ──1:N──▶ AssignmentAttempt
    User   ──1:N──▶ TestAssignment (assignee)

Ledger layout (TestAssignment.step_results, JSON):
    [{"step_index": 0, "status": "pass", "notes": "..."}, ...]
    Older rows may carry the legacy vocabulary ("passed"/"failed"/"skipped")
    or the legacy key "result"; see app.services.result_normalizer.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────

TEST_STATUSES = {"draft", "active", "archived"}

# Statuses that cannot receive new assignments.
UNASSIGNABLE_TEST_STATUSES = {"draft", "archived"}

TEST_PRIORITIES = {0, 1, 2, 3}

ASSIGNMENT_STATES = {"assigned", "in_progress", "blocked", "done"}

# Canonical step vocabulary written to new ledger entries.
STEP_STATUSES = {"pass", "fail", "skip"}

OVERALL_RESULTS = {"passed", "failed", "partial", "in_progress", "no_results"}

# ── Assignment lifecycle transition guard ────────────────────────────────
# action → allowed source states and target state. "done" is left only
# through "reassign"; "block" is reserved and unused by the execution flow.
ASSIGNMENT_TRANSITIONS = {
    "save_progress": {"from": ["assigned", "in_progress", "blocked"], "to": "in_progress"},
    "finish":        {"from": ["assigned", "in_progress", "blocked"], "to": "done"},
    "block":         {"from": ["assigned", "in_progress"], "to": "blocked"},
    "reassign":      {"from": ["assigned", "in_progress", "blocked", "done"], "to": "assigned"},
}


def validate_assignment_transition(current_state, action):
    """Return True if ``action`` may be applied to an assignment in ``current_state``."""
    rule = ASSIGNMENT_TRANSITIONS.get(action)
    if not rule:
        return False
    return current_state in rule["from"]


# ═════════════════════════════════════════════════════════════════════════════
# TEST
# ═════════════════════════════════════════════════════════════════════════════

class Test(SoftDeleteMixin, db.Model):
    """
    Test definition.

    Steps are stored as an ordered JSON list of
    ``{"title", "expected", "required"}``; assignments reference steps by
    position. The execution workflow reads tests but never writes them.
    """

    __tablename__ = "tests"
    __test__ = False  # not a pytest class

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    steps = db.Column(db.JSON, default=list, comment="Ordered [{title, expected, required}]")
    status = db.Column(
        db.String(20), default="draft", index=True,
        comment="draft | active | archived",
    )
    priority = db.Column(db.Integer, default=1, comment="0 (low) .. 3 (critical)")
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    assignments = db.relationship(
        "TestAssignment", back_populates="test", lazy="dynamic",
    )

    def step_definitions(self):
        """Steps as clean dicts. A step without a ``required`` flag is optional."""
        defs = []
        for raw in self.steps or []:
            if not isinstance(raw, dict):
                raw = {}
            defs.append({
                "title": raw.get("title") or "",
                "expected": raw.get("expected") or "",
                "required": bool(raw.get("required", False)),
            })
        return defs

    @property
    def step_count(self):
        return len(self.steps or [])

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "steps": self.step_definitions(),
            "status": self.status,
            "priority": self.priority,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Test {self.id}: {self.title[:40]} ({self.status})>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST ASSIGNMENT
# ═════════════════════════════════════════════════════════════════════════════

class TestAssignment(SoftDeleteMixin, db.Model):
    """
    One execution attempt of a Test by one assignee.

    At most one non-deleted row per (test_id, assignee_id). The service
    checks before insert; the partial unique index below backs the check
    on databases that support filtered indexes (SQLite, PostgreSQL).
    Re-execution mutates this row (see attempt_number) instead of adding one.
    """

    __tablename__ = "test_assignments"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    test_id = db.Column(
        db.Integer, db.ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assigned_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="Manager who created the assignment; equals assignee_id for self-serve",
    )

    state = db.Column(
        db.String(20), default="assigned", nullable=False, index=True,
        comment="assigned | in_progress | blocked | done",
    )
    step_results = db.Column(db.JSON, default=list, comment="Ledger: [{step_index, status, notes}]")
    notes = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    attempt_number = db.Column(
        db.Integer, default=1, nullable=False,
        comment="Incremented on every reassign",
    )
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index(
            "uq_test_assignments_active_pair", "test_id", "assignee_id",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
    )

    test = db.relationship("Test", back_populates="assignments")
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    attempts = db.relationship(
        "AssignmentAttempt", backref="assignment", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="AssignmentAttempt.attempt_number",
    )

    @property
    def is_finalized(self):
        return self.state == "done"

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "test_id": self.test_id,
            "assignee_id": self.assignee_id,
            "assigned_by_id": self.assigned_by_id,
            "state": self.state,
            "step_results": list(self.step_results or []),
            "notes": self.notes,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "attempt_number": self.attempt_number,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TestAssignment {self.id}: test#{self.test_id} user#{self.assignee_id} → {self.state}>"


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGNMENT ATTEMPT  (reassign archive)
# ═════════════════════════════════════════════════════════════════════════════

class AssignmentAttempt(db.Model):
    """
    Frozen copy of an assignment's ledger taken right before Reassign
    clears it. Insert-only.
    """

    __tablename__ = "assignment_attempts"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assignment_id = db.Column(
        db.Integer, db.ForeignKey("test_assignments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    attempt_number = db.Column(db.Integer, nullable=False)
    state = db.Column(db.String(20), nullable=False, comment="Assignment state when archived")
    step_results = db.Column(db.JSON, default=list)
    notes = db.Column(db.Text, nullable=True)
    archived_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    archived_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("assignment_id", "attempt_number", name="uq_assignment_attempt_no"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "attempt_number": self.attempt_number,
            "state": self.state,
            "step_results": list(self.step_results or []),
            "notes": self.notes,
            "archived_by_id": self.archived_by_id,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
        }

    def __repr__(self):
        return f"<AssignmentAttempt {self.id}: assignment#{self.assignment_id} #{self.attempt_number}>"
