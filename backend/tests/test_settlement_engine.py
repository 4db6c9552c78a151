from datetime import datetime, timedelta, timezone
from backoffice.models.ticket import Ticket
from backoffice.services.settlement import CostPointer, compute_liability, plan_settlement, is_billable

T0 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
PRICES = {'Fiber': 1000.0, 'Wireless': 600.0}


def make_ticket(pk, status='resolved', category='Fiber', technicians=(), paid=False, created_at=T0, legacy=None):
    t = Ticket(id=pk, ticket_code=f'TKT-{pk:03d}', client_name=f'Client {pk}', status=status,
               category=category, paid=paid, created_at=created_at)
    t.set_technicians(list(technicians))
    if legacy:
        t.technician = legacy
    return t


def breakdown(liability):
    return [(line.technician, line.count, round(line.total, 2)) for line in liability.technician_breakdown]


def test_split_with_both_line():
    tickets = [
        make_ticket(1, 'resolved', technicians=['A', 'B']),
        make_ticket(2, 'closed', technicians=['A']),
        make_ticket(3, 'open', technicians=['B']),
    ]
    liability = compute_liability(tickets, PRICES, CostPointer())
    assert liability.total_cost == 2000
    assert liability.ticket_count == 2
    assert breakdown(liability) == [('A', 2, 1500.0), ('B', 1, 500.0), ('Both', 1, 1000.0)]


def test_unassigned_ticket_counts_full_price():
    liability = compute_liability([make_ticket(1, category='Wireless')], PRICES, CostPointer())
    assert liability.total_cost == 600
    assert breakdown(liability) == [('Unassigned', 1, 600.0)]


def test_unassigned_ticket_price_per_technician_is_full_price():
    liability = compute_liability([make_ticket(1, category='Fiber'), make_ticket(2, technicians=['A', 'B'])],
                                  PRICES, CostPointer())
    rows = {row['ticketId']: row for row in liability.to_json()['ticketCosts']}
    assert rows['TKT-001']['technicianCount'] == 0
    assert rows['TKT-001']['pricePerTechnician'] == 1000.0
    assert rows['TKT-002']['pricePerTechnician'] == 500.0


def test_unknown_category_prices_at_zero():
    liability = compute_liability([make_ticket(1, category='Satellite', technicians=['A'])], PRICES, CostPointer())
    assert liability.total_cost == 0
    assert liability.ticket_costs[0].price == 0
    assert breakdown(liability) == [('A', 1, 0.0)]


def test_paid_and_pre_pointer_tickets_are_excluded():
    pointer = CostPointer(last_cleared_date=T0, version=3)
    tickets = [
        make_ticket(1, technicians=['A'], paid=True),
        make_ticket(2, technicians=['A'], created_at=T0 - timedelta(seconds=1)),
        make_ticket(3, technicians=['A'], created_at=T0),
    ]
    liability = compute_liability(tickets, PRICES, pointer)
    assert [c.ticket_pk for c in liability.ticket_costs] == [3]
    assert not is_billable(tickets[0], pointer)
    assert not is_billable(tickets[1], pointer)


def test_three_way_split_rounds_to_cents():
    liability = compute_liability([make_ticket(1, technicians=['A', 'B', 'C'])], PRICES, CostPointer())
    cost = liability.ticket_costs[0]
    assert cost.price_per_technician == 333.33
    as_json = liability.to_json()
    assert [line['total'] for line in as_json['technicianBreakdown']] == [333.33, 333.33, 333.33, 1000.0]
    assert as_json['totalCost'] == 1000.0


def test_breakdown_is_sorted_and_synthetic_lines_last():
    tickets = [
        make_ticket(1, technicians=['Zoe']),
        make_ticket(2),
        make_ticket(3, technicians=['Adam', 'Zoe']),
    ]
    names = [line.technician for line in compute_liability(tickets, PRICES, CostPointer()).technician_breakdown]
    assert names == ['Adam', 'Zoe', 'Both', 'Unassigned']


def test_legacy_single_technician_is_used():
    liability = compute_liability([make_ticket(1, legacy='Old')], PRICES, CostPointer())
    assert breakdown(liability) == [('Old', 1, 1000.0)]


def test_plan_advances_pointer_and_snapshots_tickets():
    now = T0 + timedelta(days=2)
    pointer = CostPointer(last_cleared_date=None, version=4)
    plan = plan_settlement([make_ticket(1, technicians=['A']), make_ticket(2, status='open')],
                           PRICES, pointer, now, 'root@example.com', 'Root')
    assert plan.ticket_ids == [1]
    assert plan.pointer == CostPointer(last_cleared_date=now, version=5)
    values = plan.history_values()
    assert values['total_amount'] == 1000
    assert values['ticket_count'] == 1
    assert values['cleared_by'] == 'root@example.com'
    assert values['tickets'][0]['ticketId'] == 'TKT-001'
    assert values['tickets'][0]['paidBy'] == 'root@example.com'
    assert values['technician_breakdown'] == [{'technician': 'A', 'count': 1, 'total': 1000.0}]


def test_plan_on_empty_set_still_advances():
    now = T0 + timedelta(days=1)
    plan = plan_settlement([], PRICES, CostPointer(T0, 1), now, 'root@example.com')
    assert plan.ticket_ids == []
    assert plan.liability.total_cost == 0
    assert plan.pointer.last_cleared_date == now
    assert plan.pointer.version == 2


def test_inputs_are_not_mutated():
    t = make_ticket(1, technicians=['A'])
    plan_settlement([t], PRICES, CostPointer(), T0, 'root@example.com')
    assert t.paid is False
    assert t.paid_at is None
