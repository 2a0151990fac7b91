"""
Visibility filter for execution records.

Manager-view (admin, manager)
    Sees every assignment of a test, with the assignee's identity.
Self-view (tester, viewer)
    Sees only assignments where ``assignee_id == caller.user_id``; the
    assignee label becomes "Your execution".

Ordering relative to the rollup:
    assignee-facing summaries  → filter first, then aggregate
    manager dashboards         → aggregate the unfiltered set, then slice
"""

from app.services import execution_rollup

SELF_LABEL = "Your execution"


def can_see(caller, assignment):
    return caller.is_manager or assignment.assignee_id == caller.user_id


def visible_assignments(caller, assignments):
    """Assignments the caller may see, order preserved."""
    return [a for a in assignments if can_see(caller, a)]


def assignee_label(caller, assignment):
    if caller.is_manager:
        assignee = assignment.assignee
        return assignee.display_name if assignee else f"User {assignment.assignee_id}"
    return SELF_LABEL


def statistics_for_caller(caller, assignments):
    """Per-test statistics as the caller is allowed to see them.

    Managers get the rollup of the whole set; everyone else gets the rollup
    of their own attempts only.
    """
    if caller.is_manager:
        return execution_rollup.per_test_statistics(assignments)
    return execution_rollup.per_test_statistics(visible_assignments(caller, assignments))


def slice_by_assignee(assignments):
    """Manager dashboard slice: {assignee_id: per-test statistics of that assignee}."""
    grouped = {}
    for a in assignments:
        grouped.setdefault(a.assignee_id, []).append(a)
    return {
        assignee_id: execution_rollup.per_test_statistics(items)
        for assignee_id, items in grouped.items()
    }
