"""
Tests for app/services/assignment_lifecycle.py

Scenarios covered:
  1. Create: initial state, duplicate active pair, tombstoned pair does not block
  2. Partial unique index backs the duplicate check at the database level
  3. save_progress / finish transitions and finished_at stamping
  4. Finalized assignments reject further edits
  5. Reassign archives the ledger and resets the attempt
  6. Reserved block transition
"""

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AssignmentFinalizedError, DuplicateAssignmentError, ValidationError,
)
from app.models import db
from app.models.testing import (
    AssignmentAttempt, TestAssignment, validate_assignment_transition,
)
from app.services import assignment_lifecycle as lifecycle


def _create(test, user, **kw):
    return lifecycle.create_assignment(
        tenant_id=test.tenant_id, test_id=test.id, assignee_id=user.id, **kw,
    )


class TestTransitionTable:

    @pytest.mark.parametrize("state, action, allowed", [
        ("assigned", "save_progress", True),
        ("in_progress", "save_progress", True),
        ("done", "save_progress", False),
        ("blocked", "finish", True),
        ("done", "finish", False),
        ("done", "block", False),
        ("done", "reassign", True),
        ("assigned", "reassign", True),
        ("assigned", "teleport", False),
    ])
    def test_validate_assignment_transition(self, state, action, allowed):
        assert validate_assignment_transition(state, action) is allowed


class TestCreate:

    def test_initial_state(self, active_test, tester, manager):
        a = _create(active_test, tester, assigned_by_id=manager.id, notes="  please run  ")
        assert a.id is not None
        assert a.state == "assigned"
        assert a.step_results == []
        assert a.attempt_number == 1
        assert a.notes == "please run"

    def test_duplicate_active_pair_rejected(self, active_test, tester):
        first = _create(active_test, tester)
        with pytest.raises(DuplicateAssignmentError) as exc_info:
            _create(active_test, tester)
        assert exc_info.value.existing_id == first.id

    def test_tombstoned_pair_does_not_block(self, active_test, tester):
        first = _create(active_test, tester)
        first.soft_delete()
        db.session.flush()
        second = _create(active_test, tester)
        assert second.id != first.id

    def test_same_test_other_assignee_allowed(self, active_test, tester, tester2):
        _create(active_test, tester)
        assert _create(active_test, tester2).assignee_id == tester2.id

    def test_unique_index_rejects_direct_duplicate_insert(self, active_test, tester):
        _create(active_test, tester)
        db.session.add(TestAssignment(
            tenant_id=active_test.tenant_id, test_id=active_test.id, assignee_id=tester.id,
        ))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()


class TestExecutionTransitions:

    def test_save_progress_moves_to_in_progress(self, active_test, tester):
        a = _create(active_test, tester)
        lifecycle.save_progress(a, step_results=[{"step_index": 0, "status": "pass"}], notes="half way")
        assert a.state == "in_progress"
        assert a.notes == "half way"
        assert a.step_results == [{"step_index": 0, "status": "pass"}]

    def test_save_progress_is_repeatable(self, active_test, tester):
        a = _create(active_test, tester)
        lifecycle.save_progress(a)
        lifecycle.save_progress(a)
        assert a.state == "in_progress"

    def test_none_notes_keep_existing(self, active_test, tester):
        a = _create(active_test, tester, notes="keep me")
        lifecycle.save_progress(a)
        assert a.notes == "keep me"

    def test_finish_stamps_finished_at(self, active_test, tester):
        a = _create(active_test, tester)
        lifecycle.finish(a)
        assert a.state == "done"
        assert a.finished_at is not None
        assert a.is_finalized

    @pytest.mark.parametrize("op", ["save_progress", "finish"])
    def test_done_rejects_edits(self, active_test, tester, op):
        a = _create(active_test, tester)
        lifecycle.finish(a)
        with pytest.raises(AssignmentFinalizedError):
            getattr(lifecycle, op)(a, notes="late edit")
        assert a.notes is None

    def test_block_is_reserved_transition(self, active_test, tester):
        a = _create(active_test, tester)
        lifecycle.block(a)
        assert a.state == "blocked"
        with pytest.raises(ValidationError):
            lifecycle.block(a)

    def test_block_on_done_is_finalized(self, active_test, tester):
        a = _create(active_test, tester)
        lifecycle.finish(a)
        with pytest.raises(AssignmentFinalizedError):
            lifecycle.block(a)


class TestReassign:

    def test_reassign_archives_and_resets(self, active_test, tester, manager):
        a = _create(active_test, tester)
        ledger = [{"step_index": 0, "status": "fail", "notes": "crash"}]
        lifecycle.finish(a, step_results=ledger, notes="broken")

        lifecycle.reassign(a, actor_id=manager.id)

        assert a.state == "assigned"
        assert a.step_results == []
        assert a.notes == lifecycle.DEFAULT_REASSIGN_NOTE
        assert a.finished_at is None
        assert a.attempt_number == 2

        archived = AssignmentAttempt.query.filter_by(assignment_id=a.id).all()
        assert len(archived) == 1
        assert archived[0].attempt_number == 1
        assert archived[0].state == "done"
        assert archived[0].step_results == ledger
        assert archived[0].notes == "broken"
        assert archived[0].archived_by_id == manager.id

    def test_reassign_allowed_from_open_state(self, active_test, tester):
        a = _create(active_test, tester)
        lifecycle.save_progress(a)
        lifecycle.reassign(a, note="Try again")
        assert a.state == "assigned"
        assert a.notes == "Try again"

    def test_repeated_reassign_numbers_attempts(self, active_test, tester):
        a = _create(active_test, tester)
        lifecycle.reassign(a)
        lifecycle.reassign(a)
        numbers = [x.attempt_number for x in a.attempts.all()]
        assert numbers == [1, 2]
        assert a.attempt_number == 3
