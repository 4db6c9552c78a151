from __future__ import annotations
from flask import Blueprint

from backoffice import get_db
from backoffice.constants.pages import PAGE_TICKETS, CAP_VIEW
from backoffice.decorators.auth import require_page_permission, require_superadmin, current_caller
from backoffice.decorators.audit import audit_log
from backoffice.models.payment import PaymentHistory
from backoffice.services import settlement
from backoffice.utils.listing import apply_pagination, build_list_payload
from backoffice.utils.timeutil import iso

costs_bp = Blueprint('ticket_costs', __name__)


@costs_bp.get('')
@require_page_permission(PAGE_TICKETS, CAP_VIEW)
def current_costs():
    return settlement.get_current_liability().to_json()


@costs_bp.post('/clear')
@require_superadmin
@audit_log('COSTS.CLEAR', entity='PaymentHistory', meta_keys=['paymentRecord'])
def clear_costs():
    record = settlement.settle(current_caller())
    return {
        'success': True,
        'message': 'Ticket costs cleared successfully',
        'paymentRecord': {
            'paymentDate': iso(record.payment_date),
            'totalAmount': float(record.total_amount or 0),
            'ticketCount': record.ticket_count,
        },
    }


@costs_bp.get('/history')
@require_superadmin
def payment_history():
    q = get_db().query(PaymentHistory).order_by(PaymentHistory.payment_date.desc(), PaymentHistory.id.desc())
    paged_q, total, limit, offset = apply_pagination(q)
    return build_list_payload('history', [settlement.history_json(r) for r in paged_q.all()], total, limit, offset)
