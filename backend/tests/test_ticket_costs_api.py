from datetime import timedelta
import pytest
from sqlalchemy import update, func, select
from werkzeug.exceptions import HTTPException
from backoffice import get_db
from backoffice.constants.pages import CAP_VIEW
from backoffice.models.audit import AuditLog
from backoffice.models.payment import PaymentHistory, CostTrackingPointer
from backoffice.models.ticket import Ticket
from backoffice.services import settlement
from backoffice.services.policy import Caller
from backoffice.utils.timeutil import utcnow
from tests.test_utils_seed import ensure_admin, ensure_superadmin, ensure_category, create_ticket_row, grant
from tests.test_lifecycle_helpers import jwt_headers


@pytest.fixture()
def accounts(app_context):
    ensure_category('Fiber', 1000)
    ensure_category('Wireless', 600)
    root = ensure_superadmin('root@example.com')
    viewer = ensure_admin('viewer@example.com', [grant('tickets', CAP_VIEW)])
    full_admin = ensure_admin('boss@example.com', [grant('tickets'), grant('users'), grant('settings')])
    return {
        'root': jwt_headers(root.email),
        'root_caller': Caller.from_user(root),
        'viewer': jwt_headers(viewer.email),
        'admin': jwt_headers(full_admin.email),
    }


def _seed_billable():
    create_ticket_row('TKT-001', status='resolved', technicians=['A', 'B'])
    create_ticket_row('TKT-002', status='closed', category='Wireless', technicians=['A'])
    create_ticket_row('TKT-003', status='open', technicians=['B'])


def test_current_costs_require_view(app_context, client, accounts):
    _seed_billable()
    plain = ensure_admin('nobody@example.com', [grant('users', CAP_VIEW)])
    assert client.get('/ticket-costs', headers=jwt_headers(plain.email)).status_code == 403
    body = client.get('/ticket-costs', headers=accounts['viewer']).get_json()
    assert body['totalCost'] == 1600
    assert body['ticketCount'] == 2
    assert body['lastClearedDate'] is None
    assert [c['ticketId'] for c in body['ticketCosts']] == ['TKT-001', 'TKT-002']
    assert body['technicianBreakdown'] == [
        {'technician': 'A', 'count': 2, 'total': 1100.0},
        {'technician': 'B', 'count': 1, 'total': 500.0},
        {'technician': 'Both', 'count': 1, 'total': 1000.0},
    ]


def test_clear_is_superadmin_only(app_context, client, accounts):
    _seed_billable()
    assert client.post('/ticket-costs/clear', headers=accounts['admin']).status_code == 403
    assert client.post('/ticket-costs/clear', headers=accounts['viewer']).status_code == 403
    assert client.get('/ticket-costs/history', headers=accounts['admin']).status_code == 403
    assert get_db().execute(select(func.count(PaymentHistory.id))).scalar_one() == 0


def test_clear_marks_paid_records_history_and_resets_liability(app_context, client, accounts):
    _seed_billable()
    resp = client.post('/ticket-costs/clear', headers=accounts['root'])
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert set(body) == {'success', 'message', 'paymentRecord'}
    assert body['success'] is True
    assert body['message'] == 'Ticket costs cleared successfully'
    assert set(body['paymentRecord']) == {'paymentDate', 'totalAmount', 'ticketCount'}
    assert body['paymentRecord']['totalAmount'] == 1600
    assert body['paymentRecord']['ticketCount'] == 2
    assert body['paymentRecord']['paymentDate'].endswith('Z')

    record = client.get('/ticket-costs/history', headers=accounts['root']).get_json()['history'][0]
    assert record['clearedBy'] == 'root@example.com'
    assert {t['ticketId'] for t in record['tickets']} == {'TKT-001', 'TKT-002'}
    audit = get_db().execute(select(AuditLog).where(AuditLog.action == 'COSTS.CLEAR')).scalar_one()
    assert audit.actor_email == 'root@example.com'
    assert audit.meta['paymentRecord']['ticketCount'] == 2

    session = get_db()
    paid = session.execute(select(Ticket.ticket_code).where(Ticket.paid.is_(True)).order_by(Ticket.ticket_code)).scalars().all()
    assert paid == ['TKT-001', 'TKT-002']
    pointer = session.execute(select(CostTrackingPointer)).scalar_one()
    assert pointer.version == 1
    assert pointer.last_cleared_date is not None

    after = client.get('/ticket-costs', headers=accounts['viewer']).get_json()
    assert after['totalCost'] == 0
    assert after['ticketCount'] == 0
    assert after['lastClearedDate'] is not None


def test_empty_clear_writes_zero_record(app_context, client, accounts):
    _seed_billable()
    client.post('/ticket-costs/clear', headers=accounts['root'])
    resp = client.post('/ticket-costs/clear', headers=accounts['root'])
    assert resp.status_code == 200
    assert resp.get_json()['paymentRecord']['totalAmount'] == 0
    assert resp.get_json()['paymentRecord']['ticketCount'] == 0
    history = client.get('/ticket-costs/history', headers=accounts['root']).get_json()
    assert history['pagination']['total'] == 2
    # newest first
    assert [h['ticketCount'] for h in history['history']] == [0, 2]


def test_ticket_created_before_clear_is_not_billed_later(app_context, client, accounts):
    early = create_ticket_row('TKT-001', status='in-progress', technicians=['A'],
                              created_at=utcnow() - timedelta(days=1))
    client.post('/ticket-costs/clear', headers=accounts['root'])
    early.status = 'resolved'
    get_db().commit()
    assert client.get('/ticket-costs', headers=accounts['viewer']).get_json()['ticketCount'] == 0


def test_settle_recomputes_after_losing_a_race(app_context, accounts, monkeypatch):
    _seed_billable()
    real = settlement.load_candidates
    calls = []

    def racing(session, pointer):
        rows = real(session, pointer)
        if not calls:
            # another clear marks the same tickets between our read and write
            session.execute(update(Ticket).values(paid=True).execution_options(synchronize_session=False))
        calls.append(len(rows))
        return rows

    monkeypatch.setattr(settlement, 'load_candidates', racing)
    record = settlement.settle(accounts['root_caller'])
    assert calls == [2, 2]
    assert record.ticket_count == 2
    assert get_db().execute(select(func.count(PaymentHistory.id))).scalar_one() == 1


def test_settle_pointer_race_rolls_back_everything(app_context, accounts, monkeypatch):
    _seed_billable()
    real = settlement.load_candidates

    def racing(session, pointer):
        rows = real(session, pointer)
        session.execute(update(CostTrackingPointer).values(version=CostTrackingPointer.version + 1)
                        .execution_options(synchronize_session=False))
        return rows

    monkeypatch.setattr(settlement, 'load_candidates', racing)
    with pytest.raises(HTTPException) as exc:
        settlement.settle(accounts['root_caller'], max_attempts=2)
    assert exc.value.code == 409
    session = get_db()
    assert session.execute(select(func.count(PaymentHistory.id))).scalar_one() == 0
    assert session.execute(select(func.count(Ticket.id)).where(Ticket.paid.is_(True))).scalar_one() == 0
    assert session.execute(select(CostTrackingPointer.version)).scalar_one() == 0


def test_settle_rejects_non_superadmin_caller(app_context, accounts):
    admin = Caller(email='boss@example.com', name='Boss', role='admin', approved=True,
                   page_permissions=[grant('tickets')])
    with pytest.raises(HTTPException) as exc:
        settlement.settle(admin)
    assert exc.value.code == 403
