"""
Tenant-scoped query helper.

Every get-by-id in the workflow goes through ``get_scoped`` instead of
``db.session.get(Model, pk)``. A bare primary-key read would let one
organization load another organization's tests or assignments.

Usage:
    test = get_scoped(Test, test_id, tenant_id=caller.tenant_id)
    assignment = get_scoped(TestAssignment, aid, tenant_id=caller.tenant_id)

Tombstoned rows (``deleted_at`` set) are treated exactly like missing rows.
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError
from app.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, *, tenant_id: int | None):
    """Fetch a single entity by PK inside one tenant.

    Cross-tenant access, tombstoned rows and genuinely missing rows all
    raise the same NotFoundError.

    Args:
        model: SQLAlchemy model class with ``id`` and ``tenant_id`` columns.
        pk: Primary key value to look up.
        tenant_id: Tenant scope. Required.

    Raises:
        ValueError: tenant_id missing or the model has no tenant_id column.
        NotFoundError: not found within the scope.
    """
    if tenant_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires a tenant_id scope. "
            "Unscoped lookups bypass tenant isolation."
        )
    if not hasattr(model, "tenant_id"):
        raise ValueError(f"{model.__name__} has no tenant_id column; refusing unscoped lookup")

    stmt = select(model).where(model.id == pk, model.tenant_id == tenant_id)
    if hasattr(model, "deleted_at"):
        stmt = stmt.where(model.deleted_at.is_(None))

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in tenant %s", model.__name__, pk, tenant_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result

