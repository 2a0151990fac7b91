"""
Auth Models: tenants (organizations), users and organization membership.

Only the identity surface the execution workflow needs lives here:
    - Tenant:     organization owning tests and assignments
    - User:       member account, unique email per tenant
    - OrgMember:  (tenant, user) membership carrying the org role

Account management itself (sign-up, invites, password resets) is handled
by an external service that writes these tables.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────────

ORG_ROLES = {"admin", "manager", "tester", "viewer"}

# Roles that see every assignment and may assign / reassign / remove.
MANAGER_ROLES = {"admin", "manager"}

# Roles allowed to start an execution without a prior manager assignment.
SELF_ASSIGN_ROLES = {"admin", "manager", "tester"}


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    users = db.relationship("User", back_populates="tenant", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    status = db.Column(db.String(20), default="active")  # active, invited, inactive
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Same email can exist in different tenants
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        db.Index("ix_users_tenant_id", "tenant_id"),
    )

    tenant = db.relationship("Tenant", back_populates="users")

    @property
    def display_name(self):
        return self.full_name or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "full_name": self.full_name,
            "display_name": self.display_name,
            "status": self.status,
        }


# ═══════════════════════════════════════════════════════════════
# 3. ORG MEMBERSHIP
# ═══════════════════════════════════════════════════════════════
class OrgMember(SoftDeleteMixin, db.Model):
    """Membership row. The Identity/Role Provider reads ``role`` from here."""

    __tablename__ = "org_members"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = db.Column(
        db.String(20), nullable=False, default="tester",
        comment="admin | manager | tester | viewer",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "user_id", name="uq_org_member_tenant_user"),
    )

    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "role": self.role,
        }

    def __repr__(self):
        return f"<OrgMember tenant#{self.tenant_id} user#{self.user_id} role={self.role}>"
