"""
Identity / Role Provider.

Turns "whoever is calling" into an explicit ``Caller`` value that is passed
into every workflow operation. Nothing downstream reads ambient request
state; service functions and tests build a ``Caller`` directly.

Sources:
    user id, tenant id   ← JWT parsed by app.middleware.jwt_auth (g.jwt_*)
    org role             ← OrgMember row (active membership only)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import g

from app.core.exceptions import ForbiddenError
from app.models.auth import MANAGER_ROLES, SELF_ASSIGN_ROLES, OrgMember

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """Resolved caller context for one request."""

    user_id: int
    tenant_id: int
    role: str

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES


def get_org_role(tenant_id: int, user_id: int) -> str | None:
    """Current org role of a user, or None when they are not an active member."""
    member = OrgMember.query_active(tenant_id=tenant_id, user_id=user_id).first()
    return member.role if member else None


def is_active_member(tenant_id: int, user_id: int) -> bool:
    return get_org_role(tenant_id, user_id) is not None


def caller_for(tenant_id: int, user_id: int) -> Caller:
    """Build a Caller from membership data.

    Raises:
        ForbiddenError: the user is not an active member of the tenant.
    """
    role = get_org_role(tenant_id, user_id)
    if role is None:
        logger.warning("User %s has no active membership in tenant %s", user_id, tenant_id)
        raise ForbiddenError("access this organization")
    return Caller(user_id=user_id, tenant_id=tenant_id, role=role)


def resolve_caller() -> Caller | None:
    """Caller for the current request, or None when no valid token was sent.

    Raises:
        ForbiddenError: authenticated, but not a member of the token's tenant.
    """
    user_id = getattr(g, "jwt_user_id", None)
    tenant_id = getattr(g, "jwt_tenant_id", None)
    if user_id is None or tenant_id is None:
        return None
    return caller_for(tenant_id, user_id)


# ── Authorization checks used by the workflow ────────────────────────────────

def require_manager(caller: Caller, action: str) -> None:
    """Raise ForbiddenError unless the caller is admin or manager."""
    if not caller.is_manager:
        logger.warning(
            "Denied %s for user %s (role=%s)", action, caller.user_id, caller.role,
        )
        raise ForbiddenError(action, caller.role)


def authorize_self_assignment(caller: Caller) -> None:
    """Precondition for self-serve execution without a manager assignment."""
    if caller.role not in SELF_ASSIGN_ROLES:
        logger.warning(
            "Denied self-assignment for user %s (role=%s)", caller.user_id, caller.role,
        )
        raise ForbiddenError("start an execution", caller.role)
