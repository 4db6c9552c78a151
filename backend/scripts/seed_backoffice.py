#!/usr/bin/env python
"""Idempotent seed script for categories, technicians and the first super admin.

Usage:
    python backend/scripts/seed_backoffice.py                        # seed normally
    python backend/scripts/seed_backoffice.py --dry-run              # run logic then rollback (no DB changes)
    python backend/scripts/seed_backoffice.py --promote ops@example.com
    python backend/scripts/seed_backoffice.py --admin-email a@b.c --admin-password 'S3cret!!'
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from backoffice import create_app, get_db  # type: ignore
from backoffice.constants.pages import ROLE_SUPERADMIN, full_page_grants
from backoffice.models.authz import Base, User
from backoffice.models.category import Category
from backoffice.models.technician import Technician
from seeds.defaults import CATEGORIES, TECHNICIANS


def ensure_categories(session):
    existing = {c.name for c in session.execute(select(Category)).scalars().all()}
    created = 0
    for name, price in CATEGORIES.items():
        if name not in existing:
            session.add(Category(name=name, price=price))
            created += 1
    return created


def ensure_technicians(session):
    existing = {t.name for t in session.execute(select(Technician)).scalars().all()}
    created = 0
    for name, phone in TECHNICIANS.items():
        if name not in existing:
            session.add(Technician(name=name, phone=phone))
            created += 1
    return created


def make_superadmin(user: User):
    user.role = ROLE_SUPERADMIN
    user.approved = True
    user.page_permissions = full_page_grants()


def ensure_initial_superadmin(session, email: str, password: str):
    if session.execute(select(User.id).where(User.role == ROLE_SUPERADMIN)).first():
        return False
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user:
        user = User(name='Super Admin', email=email)
        user.set_password(password)
        session.add(user)
        print(f"[INFO] Created initial super admin {email} with temporary password.")
    make_superadmin(user)
    return True


def promote(session, email: str):
    user = session.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if not user:
        print(f"[WARN] No user with email {email}; nothing promoted")
        return False
    make_superadmin(user)
    print(f"[INFO] Promoted {user.email} to super admin")
    return True


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed back-office defaults",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_backoffice.py\n  dry run: seed_backoffice.py --dry-run\n  promote: seed_backoffice.py --promote someone@example.com\n""")
    )
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--promote', metavar='EMAIL', help='Make an existing user an approved super admin')
    p.add_argument('--admin-email', default=os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com'))
    p.add_argument('--admin-password', default=os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM tickets LIMIT 1'))
        except Exception:
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            session.rollback()
            Base.metadata.create_all(session.get_bind())
        finally:
            session.commit()

    with app.app_context():
        session = get_db()
        created_c = ensure_categories(session)
        created_t = ensure_technicians(session)
        created_admin = ensure_initial_superadmin(session, args.admin_email.lower(), args.admin_password)
        if args.promote:
            promote(session, args.promote)
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) Categories would create: {created_c}, Technicians would create: {created_t}, "
                  f"Super admin bootstrap: {created_admin}")
        else:
            session.commit()
            print(f"[DONE] Categories created: {created_c}, Technicians created: {created_t}, Super admin bootstrap: {created_admin}")


if __name__ == '__main__':
    main()
