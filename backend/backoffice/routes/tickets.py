from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select, or_, cast, String

from backoffice import get_db, get_notifier
from backoffice.constants.pages import PAGE_TICKETS, CAP_VIEW, CAP_ADD, CAP_DELETE, CAP_EDIT
from backoffice.decorators.auth import require_caller, require_page_permission, current_caller
from backoffice.decorators.audit import audit_log
from backoffice.models.ticket import Ticket
from backoffice.services import tickets as ticket_service
from backoffice.services.tickets import TicketPatch, ticket_json, public_ticket_json
from backoffice.utils.listing import apply_pagination, build_list_payload, parse_bool_arg
from backoffice.utils.sorting import apply_multi_sort
from backoffice.utils.validation import validate_status

tickets_bp = Blueprint('tickets', __name__)

SORT_FIELDS = {
    'createdAt': Ticket.created_at,
    'updatedAt': Ticket.updated_at,
    'status': Ticket.status,
    'ticketId': Ticket.ticket_code,
    'clientName': Ticket.client_name,
    'category': Ticket.category,
}


def _prefetch_ticket(ticket_id):
    t = get_db().get(Ticket, ticket_id) if ticket_id is not None else None
    return ticket_json(t) if t else {}


@tickets_bp.get('')
@require_page_permission(PAGE_TICKETS, CAP_VIEW)
def list_tickets():
    session = get_db()
    q = session.query(Ticket)
    status = request.args.get('status')
    if status:
        q = q.filter(Ticket.status == validate_status(status, Ticket.ALL_STATUSES))
    category = request.args.get('category')
    if category:
        q = q.filter(Ticket.category == category.strip())
    technician = (request.args.get('technician') or '').strip()
    if technician:
        # technicians is a JSON list; match the quoted name inside its text form
        q = q.filter(or_(Ticket.technician == technician,
                         cast(Ticket.technicians, String).like(f'%"{technician}"%')))
    paid = parse_bool_arg('paid')
    if paid is not None:
        q = q.filter(Ticket.paid.is_(paid))
    search = (request.args.get('q') or '').strip()
    if search:
        like = f'%{search}%'
        q = q.filter(or_(Ticket.client_name.ilike(like), Ticket.ticket_code.ilike(like), Ticket.station.ilike(like)))
    q = apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, Ticket.created_at.desc(), Ticket.id)
    paged_q, total, limit, offset = apply_pagination(q)
    return build_list_payload('tickets', [ticket_json(t) for t in paged_q.all()], total, limit, offset)


@tickets_bp.post('')
@require_page_permission(PAGE_TICKETS, CAP_ADD)
@audit_log('TICKET.CREATE', entity='Ticket', entity_id_key='id', meta_keys=['ticketId', 'category', 'station'])
def create_ticket():
    t = ticket_service.create_ticket(request.get_json(silent=True), current_caller(), get_notifier())
    return ticket_json(t), 201


@tickets_bp.get('/by-code/<string:code>')
def get_ticket_by_code(code: str):
    t = get_db().execute(select(Ticket).where(Ticket.ticket_code == code.strip().upper())).scalar_one_or_none()
    if not t:
        abort(404, description='Ticket not found')
    return public_ticket_json(t)


@tickets_bp.get('/<int:ticket_id>')
@require_caller
def get_ticket(ticket_id: int):
    return ticket_json(ticket_service.get_ticket_or_404(ticket_id))


@tickets_bp.patch('/<int:ticket_id>')
@require_caller
@audit_log('TICKET.UPDATE', entity='Ticket', entity_id_key='id',
           diff_keys=['status', 'category', 'technicians', 'resolvedAt', 'resolutionNotes'],
           pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def update_ticket(ticket_id: int):
    patch = TicketPatch.from_payload(request.get_json(silent=True))
    t = ticket_service.update_ticket(ticket_id, patch, current_caller(), get_notifier())
    return ticket_json(t)


@tickets_bp.delete('/<int:ticket_id>')
@require_page_permission(PAGE_TICKETS, CAP_DELETE)
@audit_log('TICKET.DELETE', entity='Ticket', entity_id_arg='ticket_id')
def delete_ticket(ticket_id: int):
    ticket_service.delete_ticket(ticket_id)
    return {'deleted': True}


@tickets_bp.post('/send-reminders')
@require_page_permission(PAGE_TICKETS, CAP_EDIT)
@audit_log('TICKET.REMIND', entity='Ticket', meta_keys=['checked', 'sent', 'failed'])
def send_reminders():
    return ticket_service.send_reminders(get_notifier())
