"""Ticket lifecycle: intake, validated mutation, deletion and reminders.

Every mutation commits first and only then publishes notifications through the outbox,
so a notifier problem can never undo or fail the write.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set

from flask import abort, current_app
from sqlalchemy import select, func, or_

from backoffice import get_db
from backoffice.constants.pages import PAGE_TICKETS, CAP_EDIT
from backoffice.models.category import Category
from backoffice.models.technician import Technician
from backoffice.models.ticket import Ticket
from backoffice.services.notifier import (
    notify, KIND_CATEGORY_CHANGED, KIND_TECHNICIAN_ASSIGNED, KIND_TICKET_RESOLVED,
    KIND_TICKET_CREATED, KIND_TICKET_RECEIPT, KIND_TICKET_REMINDER,
)
from backoffice.services.policy import Caller, has_page_permission
from backoffice.utils.timeutil import utcnow, iso, parse_datetime, as_utc
from backoffice.utils.validation import validate_status, require_fields, clean_text, normalize_names

logger = logging.getLogger(__name__)

TICKET_CODE_PREFIX = 'TKT-'

_UNSET: Any = object()

# External key -> TicketPatch attribute. camelCase is the documented form, snake_case is accepted.
PATCH_KEYS = {
    'status': 'status',
    'category': 'category',
    'technicians': 'technicians',
    'technician': 'technician',
    'resolvedAt': 'resolved_at',
    'resolved_at': 'resolved_at',
    'resolutionNotes': 'resolution_notes',
    'resolution_notes': 'resolution_notes',
}


@dataclass
class TicketPatch:
    """Recognized optional fields of a ticket update; _UNSET means "not supplied".

    The legacy singular ``technician`` key is folded into ``technicians`` here so the
    lifecycle code only ever sees one technician list.
    """
    status: Any = _UNSET
    category: Any = _UNSET
    technicians: Any = _UNSET
    resolved_at: Any = _UNSET
    resolution_notes: Any = _UNSET

    @classmethod
    def from_payload(cls, data: Any) -> 'TicketPatch':
        if not isinstance(data, dict):
            abort(400, description='Request body must be a JSON object')
        ignored = sorted(k for k in data if k not in PATCH_KEYS)
        if ignored:
            logger.debug('Ignoring unrecognized ticket fields: %s', ignored)
        patch = cls()
        if 'status' in data:
            if not isinstance(data['status'], str):
                abort(400, description='status invalid')
            patch.status = validate_status(data['status'].strip(), Ticket.ALL_STATUSES)
        if 'category' in data:
            patch.category = data['category']
        if 'technicians' in data and data['technicians'] is not None:
            patch.technicians = normalize_names(data['technicians'])
        elif 'technician' in data:
            single = clean_text(data['technician'], 'technician')
            patch.technicians = [single] if single else []
        for key in ('resolvedAt', 'resolved_at'):
            if key in data:
                try:
                    patch.resolved_at = parse_datetime(data[key])
                except ValueError:
                    abort(400, description='resolvedAt must be an ISO 8601 datetime')
        for key in ('resolutionNotes', 'resolution_notes'):
            if key in data:
                notes = data[key]
                if notes is not None and not isinstance(notes, str):
                    abort(400, description='resolutionNotes must be a string')
                patch.resolution_notes = notes
        if not patch.supplied():
            abort(400, description='No updatable ticket fields supplied')
        return patch

    def supplied(self) -> Set[str]:
        return {name for name in ('status', 'category', 'technicians', 'resolved_at', 'resolution_notes')
                if getattr(self, name) is not _UNSET}

    def accepted_category(self) -> Optional[str]:
        """Trimmed category when it is a non-empty string; anything else leaves the ticket alone."""
        if isinstance(self.category, str) and self.category.strip():
            return self.category.strip()
        return None

    def is_self_service_resolution(self) -> bool:
        return self.supplied() == {'status'} and self.status == Ticket.STATUS_RESOLVED


def ticket_json(t: Ticket) -> Dict[str, Any]:
    return {
        'id': t.id,
        'ticketId': t.ticket_code,
        'clientName': t.client_name,
        'clientNumber': t.client_number,
        'station': t.station,
        'houseNumber': t.house_number,
        'category': t.category,
        'problemDescription': t.problem_description,
        'dateTimeReported': iso(t.date_time_reported),
        'status': t.status,
        'technicians': t.assigned_technicians(),
        'technician': t.technician,
        'resolvedAt': iso(t.resolved_at),
        'resolutionNotes': t.resolution_notes,
        'paid': bool(t.paid),
        'paidAt': iso(t.paid_at),
        'paidBy': t.paid_by,
        'createdAt': iso(t.created_at),
        'updatedAt': iso(t.updated_at),
    }


def public_ticket_json(t: Ticket) -> Dict[str, Any]:
    return {
        'ticketId': t.ticket_code,
        'status': t.status,
        'category': t.category,
        'station': t.station,
        'createdAt': iso(t.created_at),
        'resolvedAt': iso(t.resolved_at),
    }


def _ops_recipients() -> List[str]:
    return list(current_app.config.get('OPS_NOTIFY_NUMBERS') or [])


def _category_exists(session, name: str) -> bool:
    return session.execute(select(Category.id).where(Category.name == name)).first() is not None


def get_ticket_or_404(ticket_id: int) -> Ticket:
    ticket = get_db().get(Ticket, ticket_id)
    if not ticket:
        abort(404, description='Ticket not found')
    return ticket


def update_ticket(ticket_id: int, patch: TicketPatch, caller: Caller, outbox, now=None) -> Ticket:
    if not patch.is_self_service_resolution() and not has_page_permission(PAGE_TICKETS, CAP_EDIT, caller):
        abort(403, description='You do not have permission to edit tickets')
    session = get_db()
    ticket = get_ticket_or_404(ticket_id)
    now = now or utcnow()

    previous_category = ticket.category
    previous_technicians = set(ticket.assigned_technicians())
    previous_status = ticket.status

    # Validate everything before touching the row so a 400 leaves nothing dirty
    new_category = patch.accepted_category()
    if new_category and new_category != (previous_category or '').strip() and not _category_exists(session, new_category):
        abort(400, description=f'Unknown category {new_category}')

    if patch.status is not _UNSET:
        ticket.status = patch.status
    if new_category:
        ticket.category = new_category
    if patch.technicians is not _UNSET:
        ticket.set_technicians(patch.technicians)
    if patch.resolved_at is not _UNSET:
        ticket.resolved_at = patch.resolved_at
    if patch.resolution_notes is not _UNSET:
        ticket.resolution_notes = patch.resolution_notes
    if patch.status in Ticket.TERMINAL_STATUSES and patch.resolved_at in (_UNSET, None):
        ticket.resolved_at = now
    ticket.updated_at = now
    session.commit()
    logger.info('Ticket %s updated by %s (fields: %s)', ticket.ticket_code, caller.email, sorted(patch.supplied()))

    _publish_update_notifications(session, ticket, outbox, previous_category, previous_technicians,
                                  previous_status, new_category, patch.technicians is not _UNSET)
    return ticket


def _publish_update_notifications(session, ticket: Ticket, outbox, previous_category, previous_technicians,
                                  previous_status, new_category, technicians_supplied):
    if new_category and new_category != (previous_category or '').strip():
        notify(outbox, KIND_CATEGORY_CHANGED, _ops_recipients(),
               ticketCode=ticket.ticket_code, clientName=ticket.client_name,
               previousCategory=previous_category, newCategory=new_category)

    if technicians_supplied:
        added = [name for name in ticket.assigned_technicians() if name not in previous_technicians]
        for name in added:
            try:
                tech = session.execute(select(Technician).where(Technician.name == name)).scalar_one_or_none()
            except Exception:
                logger.exception('Technician lookup failed for %s on ticket %s', name, ticket.ticket_code)
                continue
            if not tech or not tech.phone:
                logger.info('No phone on file for technician %s; skipping assignment notice for %s', name, ticket.ticket_code)
                continue
            notify(outbox, KIND_TECHNICIAN_ASSIGNED, [tech.phone],
                   technician=name, ticketCode=ticket.ticket_code, category=ticket.category,
                   clientName=ticket.client_name, clientNumber=ticket.client_number, station=ticket.station)

    if ticket.status in Ticket.TERMINAL_STATUSES and ticket.status != previous_status:
        if not ticket.client_number:
            logger.error('Ticket %s is %s but has no client number; client not notified', ticket.ticket_code, ticket.status)
        else:
            notify(outbox, KIND_TICKET_RESOLVED, [ticket.client_number],
                   ticketCode=ticket.ticket_code, clientName=ticket.client_name, status=ticket.status)


def _next_ticket_code(session) -> str:
    seq = (session.execute(select(func.count(Ticket.id))).scalar_one() or 0) + 1
    while True:
        code = f"{TICKET_CODE_PREFIX}{seq:03d}"
        if session.execute(select(Ticket.id).where(Ticket.ticket_code == code)).first() is None:
            return code
        seq += 1


def create_ticket(data: Dict[str, Any], caller: Caller, outbox, now=None) -> Ticket:
    if not isinstance(data, dict):
        abort(400, description='Request body must be a JSON object')
    require_fields(data, ['clientName', 'clientNumber', 'station', 'houseNumber', 'category',
                          'dateTimeReported', 'problemDescription'])
    session = get_db()
    category = clean_text(data['category'], 'category')
    if not _category_exists(session, category):
        abort(400, description=f'Unknown category {category}')
    try:
        reported = parse_datetime(data['dateTimeReported'])
    except ValueError:
        abort(400, description='dateTimeReported must be an ISO 8601 datetime')
    now = now or utcnow()
    ticket = Ticket(
        ticket_code=_next_ticket_code(session),
        client_name=clean_text(data['clientName'], 'clientName'),
        client_number=clean_text(data['clientNumber'], 'clientNumber'),
        station=clean_text(data['station'], 'station'),
        house_number=clean_text(data['houseNumber'], 'houseNumber'),
        category=category,
        date_time_reported=reported,
        problem_description=clean_text(data['problemDescription'], 'problemDescription'),
        status=Ticket.STATUS_OPEN,
        paid=False,
        created_at=now,
        updated_at=now,
    )
    ticket.set_technicians([])
    session.add(ticket)
    session.commit()
    logger.info('Ticket %s created by %s', ticket.ticket_code, caller.email)

    context = dict(ticketCode=ticket.ticket_code, clientName=ticket.client_name,
                   station=ticket.station, category=ticket.category)
    notify(outbox, KIND_TICKET_CREATED, _ops_recipients(), **context)
    notify(outbox, KIND_TICKET_RECEIPT, [ticket.client_number],
           customerCareNumber=current_app.config.get('CUSTOMER_CARE_NUMBER'), **context)
    return ticket


def delete_ticket(ticket_id: int):
    session = get_db()
    ticket = get_ticket_or_404(ticket_id)
    session.delete(ticket)
    session.commit()


def send_reminders(outbox, now=None, after_hours: Optional[int] = None) -> Dict[str, int]:
    """Remind operations about tickets still open after the reminder window, once per window."""
    session = get_db()
    now = now or utcnow()
    if after_hours is None:
        after_hours = current_app.config.get('REMINDER_AFTER_HOURS', 24)
    threshold = now - timedelta(hours=after_hours)
    stale = session.execute(
        select(Ticket).where(
            Ticket.status.in_(Ticket.OPEN_STATUSES),
            Ticket.created_at <= threshold,
            or_(Ticket.last_reminder_sent.is_(None), Ticket.last_reminder_sent < threshold),
        ).order_by(Ticket.created_at.asc())
    ).scalars().all()
    results = {'checked': len(stale), 'sent': 0, 'failed': 0}
    recipients = _ops_recipients()
    for ticket in stale:
        hours_open = (now - as_utc(ticket.created_at)).total_seconds() / 3600
        published = notify(outbox, KIND_TICKET_REMINDER, recipients,
                           ticketCode=ticket.ticket_code, clientName=ticket.client_name,
                           station=ticket.station, category=ticket.category, hoursOpen=hours_open)
        if published:
            ticket.last_reminder_sent = now
            results['sent'] += 1
        else:
            results['failed'] += 1
    session.commit()
    return results

__all__ = [
    'TicketPatch', 'ticket_json', 'public_ticket_json', 'get_ticket_or_404', 'update_ticket',
    'create_ticket', 'delete_ticket', 'send_reminders',
]
