"""
Test Assignment Lifecycle Service.

State machine for one (test, assignee) execution attempt:

    assigned ──save_progress──▶ in_progress ──finish──▶ done
        │                          │                     │
        └──────── block ───────────┴──▶ blocked          │
    ◀──────────────────────── reassign ──────────────────┘

  - save_progress: any non-done state → in_progress (re-entry allowed)
  - finish:        any non-done state → done; the row is read-only afterwards
  - reassign:      any state → assigned; ledger archived then cleared
  - block:         reserved; not used by the execution flow

This module is authorization-agnostic: role checks happen in
app.services.execution_service before these functions are called.

Transaction policy: functions flush(), the caller commits.
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import (
    AssignmentFinalizedError, DuplicateAssignmentError, ValidationError,
)
from app.models import db
from app.models.testing import (
    ASSIGNMENT_TRANSITIONS, AssignmentAttempt, TestAssignment,
    validate_assignment_transition,
)

logger = logging.getLogger(__name__)

DEFAULT_REASSIGN_NOTE = "Reassigned for re-execution"


def find_active_assignment(test_id, assignee_id):
    """The non-deleted assignment for (test, assignee), or None."""
    return TestAssignment.query_active(test_id=test_id, assignee_id=assignee_id).first()


def _clean_notes(notes):
    if notes is None:
        return None
    notes = str(notes).strip()
    return notes or None


def ensure_editable(assignment, action):
    """Raise AssignmentFinalizedError when the assignment is done."""
    if assignment.is_finalized:
        logger.info(
            "Rejected %s on finalized assignment %s", action, assignment.id,
        )
        raise AssignmentFinalizedError(assignment.id, action)


def _transition(assignment, action):
    old_state = assignment.state
    if not validate_assignment_transition(old_state, action):
        if old_state == "done":
            raise AssignmentFinalizedError(assignment.id, action)
        allowed = ASSIGNMENT_TRANSITIONS.get(action, {}).get("from", [])
        raise ValidationError(
            f"Cannot '{action}' assignment {assignment.id} (state={old_state})",
            details={"state": old_state, "allowed_from": allowed},
        )
    assignment.state = ASSIGNMENT_TRANSITIONS[action]["to"]
    logger.info(
        "Assignment %s %s: %s → %s", assignment.id, action, old_state, assignment.state,
    )


# ── Create ───────────────────────────────────────────────────────────────────

def create_assignment(*, tenant_id, test_id, assignee_id, assigned_by_id=None,
                      due_date=None, notes=None):
    """Create an assignment in state ``assigned`` with an empty ledger.

    Raises:
        DuplicateAssignmentError: an active assignment for the pair exists.
    """
    existing = find_active_assignment(test_id, assignee_id)
    if existing:
        raise DuplicateAssignmentError(test_id, assignee_id, existing.id)

    assignment = TestAssignment(
        tenant_id=tenant_id,
        test_id=test_id,
        assignee_id=assignee_id,
        assigned_by_id=assigned_by_id,
        state="assigned",
        step_results=[],
        notes=_clean_notes(notes),
        due_date=due_date,
        attempt_number=1,
    )
    db.session.add(assignment)
    db.session.flush()
    logger.info(
        "Assignment %s created: test#%s → user#%s", assignment.id, test_id, assignee_id,
    )
    return assignment


# ── Execution transitions ────────────────────────────────────────────────────

def _write_ledger_and_notes(assignment, step_results, notes):
    if step_results is not None:
        assignment.step_results = list(step_results)
    if notes is not None:
        assignment.notes = _clean_notes(notes)


def save_progress(assignment, *, step_results=None, notes=None):
    """Persist ledger/notes and move to ``in_progress``. Partial ledgers are fine."""
    ensure_editable(assignment, "save_progress")
    _write_ledger_and_notes(assignment, step_results, notes)
    _transition(assignment, "save_progress")
    db.session.flush()
    return assignment


def finish(assignment, *, step_results=None, notes=None):
    """Persist ledger/notes and finalize the attempt."""
    ensure_editable(assignment, "finish")
    _write_ledger_and_notes(assignment, step_results, notes)
    _transition(assignment, "finish")
    assignment.finished_at = datetime.now(timezone.utc)
    db.session.flush()
    return assignment


def block(assignment):
    """Reserved transition to ``blocked``."""
    _transition(assignment, "block")
    db.session.flush()
    return assignment


def reassign(assignment, *, actor_id=None, note=DEFAULT_REASSIGN_NOTE):
    """Reset the attempt for re-execution.

    The current ledger and notes are archived as an AssignmentAttempt
    before being cleared, so earlier results stay auditable.
    """
    archive = AssignmentAttempt(
        tenant_id=assignment.tenant_id,
        assignment_id=assignment.id,
        attempt_number=assignment.attempt_number,
        state=assignment.state,
        step_results=list(assignment.step_results or []),
        notes=assignment.notes,
        archived_by_id=actor_id,
    )
    db.session.add(archive)

    _transition(assignment, "reassign")
    assignment.step_results = []
    assignment.notes = note
    assignment.finished_at = None
    assignment.attempt_number = (assignment.attempt_number or 1) + 1
    db.session.flush()
    return assignment
