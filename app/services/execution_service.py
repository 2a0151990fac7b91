"""Test execution workflow: the façade used by execution_bp.

Transaction policy: functions flush(), never commit(). The route handler
commits through ``db_commit_or_error`` after a successful call.

Every operation takes an explicit ``Caller`` (see app.services.identity);
nothing here reads the request context.

Operations:
- start_or_load_execution   self-serve start, or load the caller's attempt
- assign_test               manager assignment + notification
- record_step               ledger upsert by the assignee
- save_progress / finish    lifecycle transitions by the assignee
- reassign                  manager reset for re-execution
- remove_assignment         manager soft delete
- list_test_assignments, get_test_statistics, get_assignment_summary,
  get_user_statistics, list_my_assignments, get_assignment_history
"""
import logging

from flask import current_app

from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.testing import (
    ASSIGNMENT_STATES, UNASSIGNABLE_TEST_STATUSES, Test, TestAssignment,
)
from app.services import assignment_lifecycle, execution_rollup, visibility
from app.services.helpers.scoped_queries import get_scoped
from app.services.identity import (
    authorize_self_assignment, is_active_member, require_manager,
)
from app.services.notification import NotificationService
from app.services.step_ledger import StepLedger

logger = logging.getLogger(__name__)


# ── Shared helpers ───────────────────────────────────────────────────────────

def _load_test(caller, test_id):
    return get_scoped(Test, test_id, tenant_id=caller.tenant_id)


def _load_assignment(caller, assignment_id):
    """Assignment visible to the caller.

    Hidden assignments raise NotFoundError just like missing ones.
    """
    assignment = get_scoped(TestAssignment, assignment_id, tenant_id=caller.tenant_id)
    if not visibility.can_see(caller, assignment):
        raise NotFoundError(resource="TestAssignment", resource_id=assignment_id)
    return assignment


def _require_assignee(caller, assignment, action):
    if assignment.assignee_id != caller.user_id:
        logger.warning(
            "Denied %s on assignment %s for user %s (assignee is %s)",
            action, assignment.id, caller.user_id, assignment.assignee_id,
        )
        raise ForbiddenError(action, caller.role)


def _active_for_test(test_id):
    return (
        TestAssignment.query_active(test_id=test_id)
        .order_by(TestAssignment.created_at, TestAssignment.id)
        .all()
    )


def serialize_assignment(caller, assignment):
    """Assignment dict as the caller may see it, with its historical result."""
    d = assignment.to_dict()
    d["assignee_label"] = visibility.assignee_label(caller, assignment)
    d["overall_result"] = execution_rollup.overall_result(assignment.step_results)
    return d


# ═════════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════════

def start_or_load_execution(caller, test_id):
    """Return ``(assignment, created)`` for the caller's attempt at a test.

    An existing active assignment is loaded as-is, whatever its state.
    Otherwise the caller self-assigns, which needs a role that may execute
    tests; non-managers can only self-assign active tests.
    """
    test = _load_test(caller, test_id)

    existing = assignment_lifecycle.find_active_assignment(test.id, caller.user_id)
    if existing:
        return existing, False

    authorize_self_assignment(caller)
    if not caller.is_manager and test.status in UNASSIGNABLE_TEST_STATUSES:
        raise ValidationError(
            f"Cannot execute a {test.status} test",
            details={"status": test.status},
        )

    assignment = assignment_lifecycle.create_assignment(
        tenant_id=caller.tenant_id,
        test_id=test.id,
        assignee_id=caller.user_id,
        assigned_by_id=caller.user_id,
    )
    return assignment, True


def assign_test(caller, test_id, assignee_id, due_date=None, notes=None):
    """Manager assigns a test to an org member."""
    require_manager(caller, "assign tests")
    test = _load_test(caller, test_id)

    if test.status in UNASSIGNABLE_TEST_STATUSES:
        raise ValidationError(
            f"Cannot assign a {test.status} test",
            details={"status": test.status},
        )
    if not is_active_member(caller.tenant_id, assignee_id):
        raise ValidationError(
            "Assignee is not a member of this organization",
            details={"assignee_id": assignee_id},
        )

    assignment = assignment_lifecycle.create_assignment(
        tenant_id=caller.tenant_id,
        test_id=test.id,
        assignee_id=assignee_id,
        assigned_by_id=caller.user_id,
        due_date=due_date,
        notes=notes,
    )
    NotificationService.notify_assignment_created(assignment, test.title)
    return assignment


# ═════════════════════════════════════════════════════════════════════════════
# EXECUTE
# ═════════════════════════════════════════════════════════════════════════════

def record_step(caller, assignment_id, step_index, status, notes=None):
    """Upsert the outcome of one step in the caller's own open attempt."""
    assignment = _load_assignment(caller, assignment_id)
    assignment_lifecycle.ensure_editable(assignment, "record_step")
    _require_assignee(caller, assignment, "record step results")

    ledger = StepLedger.for_assignment(assignment)
    ledger.upsert(step_index, status, notes, step_count=assignment.test.step_count)
    assignment.step_results = ledger.to_list()
    db.session.flush()
    return assignment


def save_progress(caller, assignment_id, notes=None):
    assignment = _load_assignment(caller, assignment_id)
    assignment_lifecycle.ensure_editable(assignment, "save_progress")
    _require_assignee(caller, assignment, "save progress")
    return assignment_lifecycle.save_progress(assignment, notes=notes)


def finish(caller, assignment_id, notes=None):
    assignment = _load_assignment(caller, assignment_id)
    assignment_lifecycle.ensure_editable(assignment, "finish")
    _require_assignee(caller, assignment, "finish")
    return assignment_lifecycle.finish(assignment, notes=notes)


def reassign(caller, assignment_id):
    """Manager resets an attempt; the previous ledger is archived."""
    require_manager(caller, "reassign")
    assignment = _load_assignment(caller, assignment_id)
    note = current_app.config.get("REASSIGN_NOTE") or assignment_lifecycle.DEFAULT_REASSIGN_NOTE
    return assignment_lifecycle.reassign(assignment, actor_id=caller.user_id, note=note)


def remove_assignment(caller, assignment_id):
    """Manager tombstones an assignment; its state is left untouched."""
    require_manager(caller, "remove assignments")
    assignment = _load_assignment(caller, assignment_id)
    assignment.soft_delete(deleted_by_id=caller.user_id)
    db.session.flush()
    logger.info("Assignment %s removed by user %s", assignment.id, caller.user_id)
    return assignment


# ═════════════════════════════════════════════════════════════════════════════
# READ
# ═════════════════════════════════════════════════════════════════════════════

def list_test_assignments(caller, test_id):
    test = _load_test(caller, test_id)
    rows = visibility.visible_assignments(caller, _active_for_test(test.id))
    return [serialize_assignment(caller, a) for a in rows]


def get_test_statistics(caller, test_id):
    """Per-test rollup (historical rule).

    Managers get the unfiltered numbers plus a per-assignee slice; everyone
    else gets the rollup of their own attempts.
    """
    test = _load_test(caller, test_id)
    rows = _active_for_test(test.id)

    result = {
        "test_id": test.id,
        "rule": execution_rollup.HISTORICAL_RULE,
        **visibility.statistics_for_caller(caller, rows),
    }
    if caller.is_manager:
        result["by_assignee"] = [
            {"assignee_id": assignee_id, **stats}
            for assignee_id, stats in visibility.slice_by_assignee(rows).items()
        ]
    return result


def get_assignment_summary(caller, assignment_id):
    """Historical result, plus the required-step gate while still open."""
    assignment = _load_assignment(caller, assignment_id)
    summary = {
        "assignment_id": assignment.id,
        "state": assignment.state,
        "overall_result": execution_rollup.overall_result(assignment.step_results),
        "rule": execution_rollup.HISTORICAL_RULE,
        "gate": None,
    }
    if not assignment.is_finalized:
        summary["gate"] = execution_rollup.gate_summary(
            assignment.test.step_definitions(), assignment.step_results,
        )
    return summary


def get_assignment(caller, assignment_id):
    assignment = _load_assignment(caller, assignment_id)
    d = serialize_assignment(caller, assignment)
    d["test"] = assignment.test.to_dict()
    d["summary"] = get_assignment_summary(caller, assignment_id)
    return d


def get_user_statistics(caller, user_id):
    """Workload and outcome rollup of one assignee. Self or manager only."""
    if user_id != caller.user_id:
        require_manager(caller, "view another user's statistics")
    get_scoped(User, user_id, tenant_id=caller.tenant_id)

    rows = TestAssignment.query_active(tenant_id=caller.tenant_id, assignee_id=user_id).all()
    return {"user_id": user_id, **execution_rollup.per_user_statistics(rows)}


def list_my_assignments(caller, state=None):
    """The caller's active assignments, newest first."""
    if state is not None and state not in ASSIGNMENT_STATES:
        raise ValidationError(
            f"Unknown assignment state: {state}",
            details={"state": sorted(ASSIGNMENT_STATES)},
        )
    q = TestAssignment.query_active(tenant_id=caller.tenant_id, assignee_id=caller.user_id)
    if state:
        q = q.filter_by(state=state)
    rows = q.order_by(TestAssignment.created_at.desc(), TestAssignment.id.desc()).all()

    items = []
    for a in rows:
        d = serialize_assignment(caller, a)
        d["test_title"] = a.test.title if a.test else None
        items.append(d)
    return items


def get_assignment_history(caller, assignment_id):
    """Archived attempts of an assignment, oldest first."""
    assignment = _load_assignment(caller, assignment_id)
    attempts = []
    for attempt in assignment.attempts.all():
        d = attempt.to_dict()
        d["overall_result"] = execution_rollup.overall_result(attempt.step_results)
        attempts.append(d)
    return {
        "assignment_id": assignment.id,
        "current_attempt": assignment.attempt_number,
        "attempts": attempts,
    }
