"""Test execution & assignment blueprint.

REST API over app.services.execution_service.

Endpoint groups:
  Assignment by test     POST/GET /api/v1/tests/<test_id>/assignments
  Self-serve execution   POST     /api/v1/tests/<test_id>/execution
  Test statistics        GET      /api/v1/tests/<test_id>/statistics
  Assignment             GET/DELETE /api/v1/assignments/<assignment_id>
  Step results           PUT      /api/v1/assignments/<assignment_id>/steps/<step_index>
  Lifecycle              POST     /api/v1/assignments/<assignment_id>/save|finish|reassign
  Attempt history        GET      /api/v1/assignments/<assignment_id>/history
  My tasks               GET      /api/v1/me/assignments
  My notifications       GET      /api/v1/me/notifications[/unread-count]
  User statistics        GET      /api/v1/users/<user_id>/statistics

The caller comes from the bearer token (app.middleware.jwt_auth) plus the
membership table. Services flush; every write endpoint commits here.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

import app.services.execution_service as svc
from app.core.exceptions import (
    AssignmentFinalizedError, ConflictError, DuplicateAssignmentError,
    ForbiddenError, NotFoundError, ValidationError,
)
from app.models import db
from app.services.identity import resolve_caller
from app.services.notification import NotificationService
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, parse_date_input

logger = logging.getLogger(__name__)

execution_bp = Blueprint("execution", __name__, url_prefix="/api/v1")


# ── Caller helpers ────────────────────────────────────────────────────────────


def _caller_required():
    """Return ``(caller, None)`` or ``(None, 401 response)``."""
    caller = resolve_caller()
    if caller is None:
        return None, api_error(E.UNAUTHORIZED, "Authentication required")
    return caller, None


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── Error handlers ────────────────────────────────────────────────────────────


@execution_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    db.session.rollback()
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@execution_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    db.session.rollback()
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@execution_bp.errorhandler(DuplicateAssignmentError)
def _handle_duplicate(error: DuplicateAssignmentError):
    db.session.rollback()
    return api_error(
        E.CONFLICT_DUPLICATE,
        "This test is already assigned to this user",
        details={"existing_id": error.existing_id},
    )


@execution_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    db.session.rollback()
    return api_error(E.CONFLICT_DUPLICATE, str(error))


@execution_bp.errorhandler(AssignmentFinalizedError)
def _handle_finalized(error: AssignmentFinalizedError):
    db.session.rollback()
    return api_error(
        E.CONFLICT_STATE, str(error), details={"assignment_id": error.assignment_id},
    )


@execution_bp.errorhandler(ForbiddenError)
def _handle_forbidden(error: ForbiddenError):
    db.session.rollback()
    return api_error(E.FORBIDDEN, str(error))


@execution_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    db.session.rollback()
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in execution_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Per-test endpoints  (/api/v1/tests/<test_id>/...)
# ═════════════════════════════════════════════════════════════════════════


@execution_bp.route("/tests/<int:test_id>/assignments", methods=["POST"])
def assign_test(test_id):
    """Assign a test to an org member (admin/manager).

    Body: {"assignee_id": int, "due_date"?: "YYYY-MM-DD", "notes"?: str}
    """
    caller, err = _caller_required()
    if err:
        return err

    data = _json_body()
    assignee_id = data.get("assignee_id")
    if assignee_id is None:
        return api_error(E.VALIDATION_REQUIRED, "assignee_id is required")
    try:
        assignee_id = int(assignee_id)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_REQUIRED, "assignee_id must be an integer")
    try:
        due_date = parse_date_input(data.get("due_date"))
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), status=400)

    assignment = svc.assign_test(
        caller, test_id, assignee_id, due_date=due_date, notes=data.get("notes"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(svc.serialize_assignment(caller, assignment)), 201


@execution_bp.route("/tests/<int:test_id>/assignments", methods=["GET"])
def list_test_assignments(test_id):
    caller, err = _caller_required()
    if err:
        return err
    items = svc.list_test_assignments(caller, test_id)
    return jsonify({"items": items, "total": len(items)})


@execution_bp.route("/tests/<int:test_id>/execution", methods=["POST"])
def start_or_load_execution(test_id):
    """Load the caller's assignment for this test, creating it if needed."""
    caller, err = _caller_required()
    if err:
        return err

    assignment, created = svc.start_or_load_execution(caller, test_id)
    if created:
        err = db_commit_or_error()
        if err:
            return err
    return jsonify(svc.get_assignment(caller, assignment.id)), 201 if created else 200


@execution_bp.route("/tests/<int:test_id>/statistics", methods=["GET"])
def test_statistics(test_id):
    caller, err = _caller_required()
    if err:
        return err
    return jsonify(svc.get_test_statistics(caller, test_id))


# ═════════════════════════════════════════════════════════════════════════
# Assignment endpoints  (/api/v1/assignments/<assignment_id>/...)
# ═════════════════════════════════════════════════════════════════════════


@execution_bp.route("/assignments/<int:assignment_id>", methods=["GET"])
def get_assignment(assignment_id):
    caller, err = _caller_required()
    if err:
        return err
    return jsonify(svc.get_assignment(caller, assignment_id))


@execution_bp.route("/assignments/<int:assignment_id>/steps/<int:step_index>", methods=["PUT"])
def record_step(assignment_id, step_index):
    """Record one step outcome.

    Body: {"status": "pass" | "fail" | "skip", "notes"?: str}
    """
    caller, err = _caller_required()
    if err:
        return err

    data = _json_body()
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    svc.record_step(caller, assignment_id, step_index, status, notes=data.get("notes"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(svc.get_assignment(caller, assignment_id))


@execution_bp.route("/assignments/<int:assignment_id>/save", methods=["POST"])
def save_progress(assignment_id):
    caller, err = _caller_required()
    if err:
        return err

    svc.save_progress(caller, assignment_id, notes=_json_body().get("notes"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(svc.get_assignment(caller, assignment_id))


@execution_bp.route("/assignments/<int:assignment_id>/finish", methods=["POST"])
def finish(assignment_id):
    caller, err = _caller_required()
    if err:
        return err

    svc.finish(caller, assignment_id, notes=_json_body().get("notes"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(svc.get_assignment(caller, assignment_id))


@execution_bp.route("/assignments/<int:assignment_id>/reassign", methods=["POST"])
def reassign(assignment_id):
    caller, err = _caller_required()
    if err:
        return err

    svc.reassign(caller, assignment_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(svc.get_assignment(caller, assignment_id))


@execution_bp.route("/assignments/<int:assignment_id>", methods=["DELETE"])
def remove_assignment(assignment_id):
    caller, err = _caller_required()
    if err:
        return err

    svc.remove_assignment(caller, assignment_id)
    err = db_commit_or_error()
    if err:
        return err
    return "", 204


@execution_bp.route("/assignments/<int:assignment_id>/history", methods=["GET"])
def assignment_history(assignment_id):
    caller, err = _caller_required()
    if err:
        return err
    return jsonify(svc.get_assignment_history(caller, assignment_id))


# ═════════════════════════════════════════════════════════════════════════
# Per-user endpoints
# ═════════════════════════════════════════════════════════════════════════


@execution_bp.route("/me/assignments", methods=["GET"])
def my_assignments():
    """The caller's own active assignments. Optional ``?state=`` filter."""
    caller, err = _caller_required()
    if err:
        return err
    items = svc.list_my_assignments(caller, state=request.args.get("state") or None)
    return jsonify({"items": items, "total": len(items)})


@execution_bp.route("/users/<int:user_id>/statistics", methods=["GET"])
def user_statistics(user_id):
    caller, err = _caller_required()
    if err:
        return err
    return jsonify(svc.get_user_statistics(caller, user_id))


@execution_bp.route("/me/notifications", methods=["GET"])
def my_notifications():
    """The caller's in-app notifications, newest first.

    Query: ``unread_only=true``, ``limit`` (max 200), ``offset``.
    """
    caller, err = _caller_required()
    if err:
        return err

    unread_only = request.args.get("unread_only", "false").lower() == "true"
    limit = min(max(request.args.get("limit", 50, type=int), 1), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)

    items, total = NotificationService.list_for_recipient(
        caller.tenant_id, caller.user_id,
        unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@execution_bp.route("/me/notifications/unread-count", methods=["GET"])
def my_unread_count():
    caller, err = _caller_required()
    if err:
        return err
    count = NotificationService.unread_count(caller.tenant_id, caller.user_id)
    return jsonify({"unread_count": count})
