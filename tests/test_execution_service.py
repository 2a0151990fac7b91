"""
Tests for app/services/execution_service.py (workflow orchestrator).

Scenarios covered:
  1. Self-serve start: load vs create, role and test-status preconditions
  2. Manager assignment: duplicates, draft tests, non-members, notification
  3. Step recording: assignee only, finalized attempts, reassign then re-record
  4. Required-step gate vs historical rollup on open and finished attempts
  5. Visibility: self-view vs manager-view listings and statistics, hidden ids
  6. Tombstones: removal frees the pair and drops out of statistics
  7. Per-user statistics, "my assignments" and attempt history
"""

import pytest

from app.core.exceptions import (
    AssignmentFinalizedError, DuplicateAssignmentError, ForbiddenError,
    NotFoundError, ValidationError,
)
from app.models import db
from app.models.notification import Notification
from app.models.testing import Test
from app.services import execution_service as svc
from app.services.identity import Caller, caller_for
from app.services.visibility import SELF_LABEL


# ── Test helpers ─────────────────────────────────────────────────────────────


def _caller(user, role):
    return Caller(user_id=user.id, tenant_id=user.tenant_id, role=role)


def _make_test(tenant, steps, status="active", title="Checkout"):
    t = Test(tenant_id=tenant.id, title=title, steps=steps, status=status)
    db.session.add(t)
    db.session.commit()
    return t


def _run(caller, assignment_id, *statuses):
    for i, status in enumerate(statuses):
        svc.record_step(caller, assignment_id, i, status)


@pytest.fixture()
def mgr(manager):
    return _caller(manager, "manager")


@pytest.fixture()
def tst(tester):
    return _caller(tester, "tester")


# ── 1. Self-serve start ──────────────────────────────────────────────────────


class TestStartOrLoadExecution:

    def test_creates_then_loads(self, tst, active_test):
        first, created = svc.start_or_load_execution(tst, active_test.id)
        assert created is True
        assert first.state == "assigned"
        assert first.assigned_by_id == tst.user_id

        again, created = svc.start_or_load_execution(tst, active_test.id)
        assert created is False
        assert again.id == first.id

    def test_loads_manager_assignment(self, mgr, tst, active_test):
        assigned = svc.assign_test(mgr, active_test.id, tst.user_id)
        loaded, created = svc.start_or_load_execution(tst, active_test.id)
        assert created is False
        assert loaded.id == assigned.id

    def test_viewer_cannot_self_assign(self, viewer, active_test):
        with pytest.raises(ForbiddenError):
            svc.start_or_load_execution(_caller(viewer, "viewer"), active_test.id)

    def test_tester_cannot_start_draft(self, tst, draft_test):
        with pytest.raises(ValidationError, match="draft"):
            svc.start_or_load_execution(tst, draft_test.id)

    def test_manager_can_start_draft(self, mgr, draft_test):
        _, created = svc.start_or_load_execution(mgr, draft_test.id)
        assert created is True

    def test_other_tenant_test_not_found(self, tst, other_tenant):
        foreign = _make_test(other_tenant, [{"title": "x"}])
        with pytest.raises(NotFoundError):
            svc.start_or_load_execution(tst, foreign.id)


# ── 2. Manager assignment ────────────────────────────────────────────────────


class TestAssignTest:

    def test_assign_creates_notification(self, mgr, tester, active_test):
        a = svc.assign_test(mgr, active_test.id, tester.id, notes="before Friday")
        assert a.assigned_by_id == mgr.user_id
        notes = Notification.query.filter_by(recipient_id=tester.id).all()
        assert len(notes) == 1
        assert notes[0].entity_id == a.id
        assert active_test.title in notes[0].title

    def test_notifications_can_be_disabled(self, app, mgr, tester, active_test):
        app.config["NOTIFICATIONS_ENABLED"] = False
        try:
            svc.assign_test(mgr, active_test.id, tester.id)
        finally:
            app.config["NOTIFICATIONS_ENABLED"] = True
        assert Notification.query.count() == 0

    def test_duplicate_rejected(self, mgr, tester, active_test):
        svc.assign_test(mgr, active_test.id, tester.id)
        with pytest.raises(DuplicateAssignmentError):
            svc.assign_test(mgr, active_test.id, tester.id)

    @pytest.mark.parametrize("status", ["draft", "archived"])
    def test_unassignable_test_rejected(self, mgr, tester, tenant, status):
        t = _make_test(tenant, [{"title": "x"}], status=status)
        with pytest.raises(ValidationError, match=status):
            svc.assign_test(mgr, t.id, tester.id)

    def test_non_member_rejected(self, mgr, active_test, other_tenant):
        from app.models.auth import User
        outsider = User(tenant_id=other_tenant.id, email="out@example.com")
        db.session.add(outsider)
        db.session.commit()
        with pytest.raises(ValidationError, match="not a member"):
            svc.assign_test(mgr, active_test.id, outsider.id)

    def test_tester_cannot_assign(self, tst, tester2, active_test):
        with pytest.raises(ForbiddenError):
            svc.assign_test(tst, active_test.id, tester2.id)


# ── 3. Step recording ────────────────────────────────────────────────────────


class TestRecordStep:

    def test_assignee_records_steps(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        svc.record_step(tst, a.id, 0, "passed", notes="ok")
        svc.record_step(tst, a.id, 1, "fail")
        assert a.step_results == [
            {"step_index": 0, "status": "pass", "notes": "ok"},
            {"step_index": 1, "status": "fail"},
        ]
        assert a.state == "assigned"

    def test_non_assignee_manager_forbidden(self, mgr, tester, active_test):
        a = svc.assign_test(mgr, active_test.id, tester.id)
        with pytest.raises(ForbiddenError):
            svc.record_step(mgr, a.id, 0, "pass")

    def test_index_beyond_test_rejected(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        _run(tst, a.id, "pass", "pass", "pass")
        with pytest.raises(ValidationError):
            svc.record_step(tst, a.id, 3, "pass")

    def test_finish_then_record_is_finalized(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        _run(tst, a.id, "pass")
        svc.finish(tst, a.id)
        with pytest.raises(AssignmentFinalizedError):
            svc.record_step(tst, a.id, 1, "pass")
        with pytest.raises(AssignmentFinalizedError):
            svc.save_progress(tst, a.id, notes="too late")

    def test_finish_reassign_record_succeeds(self, mgr, tst, active_test):
        a = svc.assign_test(mgr, active_test.id, tst.user_id)
        _run(tst, a.id, "pass", "fail")
        svc.finish(tst, a.id)

        svc.reassign(mgr, a.id)
        assert a.step_results == []
        assert a.notes == "Reassigned for re-execution"

        svc.record_step(tst, a.id, 0, "pass")
        assert a.step_results == [{"step_index": 0, "status": "pass"}]

    def test_tester_cannot_reassign(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        with pytest.raises(ForbiddenError):
            svc.reassign(tst, a.id)

    def test_reassign_uses_configured_note(self, app, mgr, tst, active_test):
        a = svc.assign_test(mgr, active_test.id, tst.user_id)
        app.config["REASSIGN_NOTE"] = "Run it again"
        try:
            svc.reassign(mgr, a.id)
        finally:
            app.config["REASSIGN_NOTE"] = "Reassigned for re-execution"
        assert a.notes == "Run it again"

    def test_save_progress_then_finish(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        _run(tst, a.id, "pass")
        svc.save_progress(tst, a.id, notes="lunch break")
        assert a.state == "in_progress"
        svc.finish(tst, a.id)
        assert a.state == "done"
        assert a.notes == "lunch break"


# ── 4. Gate vs historical rollup ─────────────────────────────────────────────


class TestAssignmentSummary:

    def test_required_failure(self, tst, tenant):
        t = _make_test(tenant, [
            {"title": "a", "required": True},
            {"title": "b", "required": True},
            {"title": "c", "required": True},
        ])
        a, _ = svc.start_or_load_execution(tst, t.id)
        _run(tst, a.id, "pass", "fail", "pass")

        summary = svc.get_assignment_summary(tst, a.id)
        assert summary["gate"]["result"] == "failed"
        assert summary["gate"]["required_failures"] == [1]
        assert summary["overall_result"] == "failed"

    def test_pass_skip_without_required_flags_is_partial(self, tst, tenant):
        t = _make_test(tenant, [{"title": "a"}, {"title": "b"}])
        a, _ = svc.start_or_load_execution(tst, t.id)
        _run(tst, a.id, "pass", "skip")

        summary = svc.get_assignment_summary(tst, a.id)
        assert summary["gate"]["result"] == "partial"
        assert summary["overall_result"] == "partial"

    def test_unfinished_steps_gate_on_recorded_entries(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        _run(tst, a.id, "pass")
        summary = svc.get_assignment_summary(tst, a.id)
        assert summary["gate"]["result"] == "passed"
        assert summary["gate"]["pending"] == 2
        assert summary["overall_result"] == "passed"

    def test_done_attempt_has_no_gate(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        _run(tst, a.id, "pass", "pass", "pass")
        svc.finish(tst, a.id)
        summary = svc.get_assignment_summary(tst, a.id)
        assert summary["gate"] is None
        assert summary["overall_result"] == "passed"


# ── 5. Visibility ────────────────────────────────────────────────────────────


class TestVisibility:

    @pytest.fixture()
    def four_attempts(self, mgr, admin, tester, tester2, viewer, active_test):
        assignees = [tester, tester2, viewer, admin]
        return [svc.assign_test(mgr, active_test.id, u.id) for u in assignees]

    def test_self_view_sees_one_of_four(self, tester, four_attempts, active_test):
        items = svc.list_test_assignments(_caller(tester, "tester"), active_test.id)
        assert len(items) == 1
        assert items[0]["assignee_id"] == tester.id
        assert items[0]["assignee_label"] == SELF_LABEL

    def test_manager_sees_four(self, mgr, four_attempts, active_test):
        items = svc.list_test_assignments(mgr, active_test.id)
        assert len(items) == 4
        assert "Tess Tester" in {i["assignee_label"] for i in items}

    def test_hidden_assignment_is_not_found(self, tester, four_attempts):
        other = next(a for a in four_attempts if a.assignee_id != tester.id)
        with pytest.raises(NotFoundError):
            svc.get_assignment(_caller(tester, "tester"), other.id)

    def test_statistics_by_role(self, mgr, tester, tester2, four_attempts, active_test):
        t1, t2 = _caller(tester, "tester"), _caller(tester2, "tester")
        _run(t1, four_attempts[0].id, "pass", "pass", "pass")
        _run(t2, four_attempts[1].id, "fail")

        mine = svc.get_test_statistics(t1, active_test.id)
        assert (mine["total"], mine["passed"], mine["pass_rate"]) == (1, 1, 100)
        assert "by_assignee" not in mine

        everything = svc.get_test_statistics(mgr, active_test.id)
        assert (everything["total"], everything["passed"], everything["failed"]) == (2, 1, 1)
        assert everything["pass_rate"] == 50
        assert len(everything["by_assignee"]) == 4

    def test_cross_tenant_assignment_not_found(self, mgr, tester, active_test, other_tenant):
        a = svc.assign_test(mgr, active_test.id, tester.id)
        from app.models.auth import OrgMember, User
        intruder = User(tenant_id=other_tenant.id, email="boss@globex.example")
        db.session.add(intruder)
        db.session.flush()
        db.session.add(OrgMember(tenant_id=other_tenant.id, user_id=intruder.id, role="admin"))
        db.session.commit()
        with pytest.raises(NotFoundError):
            svc.get_assignment(caller_for(other_tenant.id, intruder.id), a.id)


# ── 6. Tombstones ────────────────────────────────────────────────────────────


class TestRemoveAssignment:

    def test_removed_pair_can_be_reassigned(self, mgr, tester, active_test):
        a = svc.assign_test(mgr, active_test.id, tester.id)
        svc.remove_assignment(mgr, a.id)
        assert a.is_deleted
        assert a.state == "assigned"

        b = svc.assign_test(mgr, active_test.id, tester.id)
        assert b.id != a.id

    def test_removed_attempt_not_in_statistics(self, mgr, tst, active_test):
        a = svc.assign_test(mgr, active_test.id, tst.user_id)
        _run(tst, a.id, "fail")
        svc.remove_assignment(mgr, a.id)
        stats = svc.get_test_statistics(mgr, active_test.id)
        assert stats["total"] == 0
        with pytest.raises(NotFoundError):
            svc.get_assignment(mgr, a.id)

    def test_tester_cannot_remove(self, tst, active_test):
        a, _ = svc.start_or_load_execution(tst, active_test.id)
        with pytest.raises(ForbiddenError):
            svc.remove_assignment(tst, a.id)


# ── 7. Per-user reads ────────────────────────────────────────────────────────


class TestPerUserReads:

    def test_user_statistics_self(self, mgr, tst, tenant, active_test):
        other_test = _make_test(tenant, [{"title": "only"}], title="Search")
        a = svc.assign_test(mgr, active_test.id, tst.user_id)
        b = svc.assign_test(mgr, other_test.id, tst.user_id)
        _run(tst, b.id, "pass")
        svc.finish(tst, b.id)

        stats = svc.get_user_statistics(tst, tst.user_id)
        assert stats["assignments"] == 2
        assert stats["by_state"]["assigned"] == 1
        assert stats["by_state"]["done"] == 1
        assert stats["executed"] == 1
        assert stats["pass_rate"] == 100
        assert a.id != b.id

    def test_tester_cannot_read_other_user_statistics(self, tst, tester2):
        with pytest.raises(ForbiddenError):
            svc.get_user_statistics(tst, tester2.id)

    def test_manager_reads_other_user_statistics(self, mgr, tester):
        assert svc.get_user_statistics(mgr, tester.id)["assignments"] == 0

    def test_unknown_user_statistics_not_found(self, mgr):
        with pytest.raises(NotFoundError):
            svc.get_user_statistics(mgr, 987654)

    def test_my_assignments_with_state_filter(self, mgr, tst, tenant, active_test):
        other_test = _make_test(tenant, [{"title": "only"}], title="Search")
        svc.assign_test(mgr, active_test.id, tst.user_id)
        b = svc.assign_test(mgr, other_test.id, tst.user_id)
        svc.save_progress(tst, b.id)

        assert len(svc.list_my_assignments(tst)) == 2
        in_progress = svc.list_my_assignments(tst, state="in_progress")
        assert [i["id"] for i in in_progress] == [b.id]
        assert in_progress[0]["test_title"] == "Search"

    def test_my_assignments_unknown_state(self, tst):
        with pytest.raises(ValidationError):
            svc.list_my_assignments(tst, state="sleeping")

    def test_history_lists_archived_attempts(self, mgr, tst, active_test):
        a = svc.assign_test(mgr, active_test.id, tst.user_id)
        _run(tst, a.id, "fail")
        svc.finish(tst, a.id)
        svc.reassign(mgr, a.id)

        history = svc.get_assignment_history(tst, a.id)
        assert history["current_attempt"] == 2
        assert len(history["attempts"]) == 1
        assert history["attempts"][0]["overall_result"] == "failed"
        assert history["attempts"][0]["state"] == "done"
