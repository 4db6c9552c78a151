"""Test seeding utilities to reduce duplication.

These helpers centralize creation of users with page grants, categories, technicians and
tickets. User helpers are idempotent by email; ticket creation is not.
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
from backoffice import get_db
from backoffice.constants.pages import ROLE_USER, ROLE_ADMIN, ROLE_SUPERADMIN, PERMISSION_TYPES, full_page_grants
from backoffice.models.authz import User
from backoffice.models.category import Category
from backoffice.models.technician import Technician
from backoffice.models.ticket import Ticket
from backoffice.utils.timeutil import utcnow

DEFAULT_PASSWORD = 'correct-horse-1'
OPS_NUMBERS = ['+254700000001', '+254700000002']


def grant(page_id: str, *capabilities: str) -> Dict[str, object]:
    """Build one page grant; no capabilities means all four."""
    return {'pageId': page_id, 'permissions': list(capabilities or PERMISSION_TYPES)}


def ensure_user(email: str, role: str = ROLE_USER, approved: bool = True,
                grants: Optional[Iterable[Dict[str, object]]] = None, name: Optional[str] = None,
                password: str = DEFAULT_PASSWORD) -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(email=email, name=name or email.split('@')[0])
        u.set_password(password)
        session.add(u)
    u.role = role
    u.approved = approved
    u.page_permissions = full_page_grants() if role == ROLE_SUPERADMIN else list(grants or [])
    session.commit()
    return u


def ensure_admin(email: str, grants: Iterable[Dict[str, object]]) -> User:
    return ensure_user(email, role=ROLE_ADMIN, grants=grants)


def ensure_superadmin(email: str = 'root@example.com') -> User:
    return ensure_user(email, role=ROLE_SUPERADMIN)


def ensure_category(name: str, price: float) -> Category:
    session = get_db()
    c = session.query(Category).filter_by(name=name).one_or_none()
    if not c:
        c = Category(name=name, price=price)
        session.add(c)
    c.price = price
    session.commit()
    return c


def ensure_technician(name: str, phone: Optional[str] = None) -> Technician:
    session = get_db()
    t = session.query(Technician).filter_by(name=name).one_or_none()
    if not t:
        t = Technician(name=name)
        session.add(t)
    t.phone = phone
    session.commit()
    return t


def create_ticket_row(code: str, status: str = Ticket.STATUS_OPEN, category: Optional[str] = 'Fiber',
                      technicians: List[str] = (), paid: bool = False, client_number: Optional[str] = '+254711000111',
                      created_at: Optional[datetime] = None, resolved_at: Optional[datetime] = None,
                      legacy_technician: Optional[str] = None) -> Ticket:
    """Insert a ticket directly, bypassing intake validation and notifications."""
    session = get_db()
    created = created_at or utcnow() - timedelta(minutes=5)
    t = Ticket(
        ticket_code=code,
        client_name=f'Client {code}',
        client_number=client_number,
        station='Kahawa',
        house_number='B12',
        category=category,
        problem_description='No connectivity',
        status=status,
        paid=paid,
        resolved_at=resolved_at,
        created_at=created,
        updated_at=created,
    )
    t.set_technicians(list(technicians))
    if legacy_technician:
        t.technicians = []
        t.technician = legacy_technician
    session.add(t)
    session.commit()
    return t


__all__ = [
    'DEFAULT_PASSWORD', 'OPS_NUMBERS', 'grant', 'ensure_user', 'ensure_admin', 'ensure_superadmin', 'ensure_category',
    'ensure_technician', 'create_ticket_row',
]
