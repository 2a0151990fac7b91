#!/usr/bin/env python3
"""
QA Hub: Demo Data Seed Script.

Creates one organization with a member per role, a few test definitions and
assignments at different lifecycle points, then prints a bearer token per member
so the API can be exercised with curl.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --append
    python scripts/seed_demo_data.py --slug demo-qa --verbose
"""

import argparse
import sys

sys.path.insert(0, ".")

from app import create_app
from app.models import db
from app.models.auth import OrgMember, Tenant, User
from app.models.notification import Notification
from app.models.testing import AssignmentAttempt, Test, TestAssignment
from app.services import assignment_lifecycle as lifecycle
from app.services.jwt_service import generate_access_token


MEMBERS = [
    ("admin", "ada@demo.example", "Ada Admin"),
    ("manager", "morgan@demo.example", "Morgan Manager"),
    ("tester", "tess@demo.example", "Tess Tester"),
    ("tester", "toni@demo.example", "Toni Tester"),
    ("viewer", "vic@demo.example", "Vic Viewer"),
]

TESTS = [
    ("Login with valid credentials", "active", [
        {"title": "Open login page", "expected": "Form visible", "required": True},
        {"title": "Submit valid credentials", "expected": "Dashboard visible", "required": True},
        {"title": "Check greeting", "expected": "User name shown"},
    ]),
    ("Password reset email", "active", [
        {"title": "Request reset", "expected": "Confirmation shown", "required": True},
        {"title": "Open email link", "expected": "Reset form visible"},
    ]),
    ("Checkout with coupon", "draft", [
        {"title": "Add item", "expected": "Cart shows 1 item"},
        {"title": "Apply coupon", "expected": "Discount applied"},
    ]),
]


def _reset(verbose):
    for model in (Notification, AssignmentAttempt, TestAssignment, Test, OrgMember, User, Tenant):
        n = model.query.delete()
        if verbose:
            print(f"  cleared {n:>4} {model.__tablename__}")


def seed(slug):
    tenant = Tenant(name="Demo QA", slug=slug)
    db.session.add(tenant)
    db.session.flush()

    users = {}
    for role, email, name in MEMBERS:
        u = User(tenant_id=tenant.id, email=email, full_name=name)
        db.session.add(u)
        db.session.flush()
        db.session.add(OrgMember(tenant_id=tenant.id, user_id=u.id, role=role))
        users[email] = u

    tests = []
    for title, status, steps in TESTS:
        t = Test(tenant_id=tenant.id, title=title, status=status, steps=steps)
        db.session.add(t)
        tests.append(t)
    db.session.flush()

    manager = users["morgan@demo.example"]
    tess = users["tess@demo.example"]
    toni = users["toni@demo.example"]

    # Assignments at different points of the lifecycle
    a1 = lifecycle.create_assignment(
        tenant_id=tenant.id, test_id=tests[0].id, assignee_id=tess.id, assigned_by_id=manager.id,
    )
    lifecycle.finish(a1, step_results=[
        {"step_index": 0, "status": "pass"},
        {"step_index": 1, "status": "pass"},
        {"step_index": 2, "status": "skip"},
    ])
    a2 = lifecycle.create_assignment(
        tenant_id=tenant.id, test_id=tests[0].id, assignee_id=toni.id, assigned_by_id=manager.id,
    )
    # Legacy vocabulary, as older rows carry it
    lifecycle.save_progress(a2, step_results=[{"step_index": 0, "result": "failed"}])
    lifecycle.create_assignment(
        tenant_id=tenant.id, test_id=tests[1].id, assignee_id=tess.id, assigned_by_id=manager.id,
    )

    db.session.commit()
    return tenant, users


def main():
    parser = argparse.ArgumentParser(description="Seed QA Hub demo data")
    parser.add_argument("--append", action="store_true", help="Keep existing rows")
    parser.add_argument("--slug", default="demo-qa", help="Tenant slug")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        db.create_all()
        if not args.append:
            _reset(args.verbose)
        elif Tenant.query.filter_by(slug=args.slug).first():
            print(f"  Tenant '{args.slug}' already exists; choose another --slug")
            sys.exit(1)

        tenant, users = seed(args.slug)

        print(f"\n  Seeded tenant '{tenant.slug}' (id={tenant.id})")
        for role, email, _ in MEMBERS:
            token = generate_access_token(users[email].id, tenant.id)
            print(f"  {role:<8} {email:<22} {token}")
        print()


if __name__ == "__main__":
    main()
