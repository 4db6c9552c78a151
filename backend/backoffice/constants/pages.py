"""Resource areas ("pages") that permission grants refer to, plus role names.

Page ids are persisted inside users.page_permissions; never rename one silently.
"""
from __future__ import annotations
from typing import Dict, List

ROLE_USER = 'user'
ROLE_ADMIN = 'admin'
ROLE_SUPERADMIN = 'superadmin'
ALL_ROLES = (ROLE_USER, ROLE_ADMIN, ROLE_SUPERADMIN)

CAP_VIEW = 'view'
CAP_ADD = 'add'
CAP_EDIT = 'edit'
CAP_DELETE = 'delete'
PERMISSION_TYPES = (CAP_VIEW, CAP_ADD, CAP_EDIT, CAP_DELETE)

AVAILABLE_PAGES: List[Dict[str, str]] = [
    {'id': 'dashboard', 'name': 'Dashboard', 'path': '/admin'},
    {'id': 'tickets', 'name': 'Tickets', 'path': '/admin/tickets'},
    {'id': 'expenses', 'name': 'Expenses', 'path': '/admin/expenses'},
    {'id': 'stations', 'name': 'Stations', 'path': '/admin/stations'},
    {'id': 'equipment', 'name': 'Equipment', 'path': '/admin/equipment'},
    {'id': 'internet-connections', 'name': 'Internet Connections', 'path': '/admin/internet-connections'},
    {'id': 'users', 'name': 'User Management', 'path': '/admin/users'},
    {'id': 'settings', 'name': 'Settings', 'path': '/admin/settings'},
    {'id': 'send-message', 'name': 'Send Message', 'path': '/admin/send-message'},
    {'id': 'equipment-requests', 'name': 'Request Equipment', 'path': '/admin/equipment-requests'},
    {'id': 'manage-requests', 'name': 'Manage Requests', 'path': '/admin/manage-requests'},
    {'id': 'station-tasks', 'name': 'Station Tasks', 'path': '/admin/station-tasks'},
]

PAGE_IDS = tuple(p['id'] for p in AVAILABLE_PAGES)

# Resource areas used by the API guards
PAGE_TICKETS = 'tickets'
PAGE_USERS = 'users'
PAGE_SETTINGS = 'settings'


def full_page_grants() -> List[Dict[str, object]]:
    """Every known page with all four capabilities (the superadmin grant set)."""
    return [{'pageId': pid, 'permissions': list(PERMISSION_TYPES)} for pid in PAGE_IDS]
