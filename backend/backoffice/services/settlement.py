"""Technician cost settlement.

The engine half (``compute_liability`` / ``plan_settlement``) is pure: it takes ticket rows, a
category price map and the current pointer and returns values, so it can be exercised without a
database. ``get_current_liability`` and ``settle`` wrap it with loading and the transactional
apply step.

Settling recomputes the billable set, then inside one transaction:
  1. marks exactly those tickets paid, guarded on ``paid`` still being false,
  2. appends a PaymentHistory record,
  3. advances the pointer guarded on its ``version``.
If either guarded update touches fewer rows than planned another settlement won the race; the
transaction is rolled back and the whole thing is recomputed.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from flask import abort, current_app
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError

from backoffice import get_db
from backoffice.models.category import Category
from backoffice.models.payment import PaymentHistory, CostTrackingPointer
from backoffice.models.ticket import Ticket
from backoffice.services.policy import Caller, is_highest_privilege
from backoffice.utils.timeutil import EPOCH, as_utc, iso, utcnow

logger = logging.getLogger(__name__)

BOTH_LABEL = 'Both'
UNASSIGNED_LABEL = 'Unassigned'


@dataclass(frozen=True)
class CostPointer:
    last_cleared_date: Optional[datetime] = None
    version: int = 0

    @property
    def lower_bound(self) -> datetime:
        return as_utc(self.last_cleared_date) or EPOCH


@dataclass
class TicketCost:
    ticket_pk: int
    ticket_code: str
    client_name: str
    category: Optional[str]
    status: str
    price: float
    technicians: List[str]
    price_per_technician: float
    created_at: Optional[datetime]
    resolved_at: Optional[datetime]

    def to_json(self) -> Dict[str, Any]:
        return {
            'id': self.ticket_pk,
            'ticketId': self.ticket_code,
            'clientName': self.client_name,
            'category': self.category,
            'status': self.status,
            'price': self.price,
            'technicians': list(self.technicians),
            'technicianCount': len(self.technicians),
            'pricePerTechnician': self.price_per_technician,
            'createdAt': iso(self.created_at),
            'resolvedAt': iso(self.resolved_at),
        }


@dataclass
class EarningsLine:
    technician: str
    count: int = 0
    total: float = 0.0

    def to_json(self) -> Dict[str, Any]:
        return {'technician': self.technician, 'count': self.count, 'total': round(self.total, 2)}


@dataclass
class Liability:
    total_cost: float
    ticket_costs: List[TicketCost]
    technician_breakdown: List[EarningsLine]
    last_cleared_date: Optional[datetime]

    @property
    def ticket_count(self) -> int:
        return len(self.ticket_costs)

    def to_json(self) -> Dict[str, Any]:
        return {
            'totalCost': self.total_cost,
            'ticketCount': self.ticket_count,
            'ticketCosts': [c.to_json() for c in self.ticket_costs],
            'technicianBreakdown': [line.to_json() for line in self.technician_breakdown],
            'lastClearedDate': iso(self.last_cleared_date),
        }


@dataclass
class SettlementPlan:
    ticket_ids: List[int]
    liability: Liability
    pointer: CostPointer
    paid_at: datetime
    cleared_by: str
    cleared_by_name: Optional[str] = None
    snapshot: List[Dict[str, Any]] = field(default_factory=list)

    def history_values(self) -> Dict[str, Any]:
        return {
            'payment_date': self.paid_at,
            'total_amount': self.liability.total_cost,
            'ticket_count': self.liability.ticket_count,
            'tickets': self.snapshot,
            'technician_breakdown': [line.to_json() for line in self.liability.technician_breakdown],
            'cleared_by': self.cleared_by,
            'cleared_by_name': self.cleared_by_name,
            'created_at': self.paid_at,
        }


def is_billable(ticket, pointer: CostPointer) -> bool:
    if ticket.status not in Ticket.TERMINAL_STATUSES or ticket.paid is True:
        return False
    created = as_utc(ticket.created_at)
    return created is not None and created >= pointer.lower_bound


def ticket_cost(ticket, prices: Dict[str, float]) -> TicketCost:
    price = float(prices.get(ticket.category or '', 0) or 0)
    technicians = ticket.assigned_technicians()
    per_tech = round(price / len(technicians), 2) if technicians else price
    return TicketCost(
        ticket_pk=ticket.id,
        ticket_code=ticket.ticket_code,
        client_name=ticket.client_name,
        category=ticket.category,
        status=ticket.status,
        price=price,
        technicians=technicians,
        price_per_technician=per_tech,
        created_at=ticket.created_at,
        resolved_at=ticket.resolved_at,
    )


def aggregate_breakdown(costs: Iterable[TicketCost]) -> List[EarningsLine]:
    """Per-technician earnings plus the synthetic Both/Unassigned lines.

    Each technician gets an equal share of the ticket price. Multi-technician tickets are also
    counted once, at full price, on the Both line; unassigned tickets go to Unassigned.
    """
    named: Dict[str, EarningsLine] = {}
    both = EarningsLine(BOTH_LABEL)
    unassigned = EarningsLine(UNASSIGNED_LABEL)
    for cost in costs:
        if not cost.technicians:
            unassigned.count += 1
            unassigned.total += cost.price
            continue
        share = cost.price / len(cost.technicians)
        for name in cost.technicians:
            line = named.setdefault(name, EarningsLine(name))
            line.count += 1
            line.total += share
        if len(cost.technicians) > 1:
            both.count += 1
            both.total += cost.price
    lines = [named[name] for name in sorted(named)]
    lines.extend(line for line in (both, unassigned) if line.count)
    return lines


def compute_liability(tickets: Iterable, prices: Dict[str, float], pointer: CostPointer) -> Liability:
    billable = sorted((t for t in tickets if is_billable(t, pointer)),
                      key=lambda t: (as_utc(t.created_at), t.id or 0))
    costs = [ticket_cost(t, prices) for t in billable]
    return Liability(
        total_cost=round(sum(c.price for c in costs), 2),
        ticket_costs=costs,
        technician_breakdown=aggregate_breakdown(costs),
        last_cleared_date=pointer.last_cleared_date,
    )


def plan_settlement(tickets: Iterable, prices: Dict[str, float], pointer: CostPointer, now: datetime,
                    cleared_by: str, cleared_by_name: Optional[str] = None) -> SettlementPlan:
    liability = compute_liability(tickets, prices, pointer)
    snapshot = []
    for cost in liability.ticket_costs:
        entry = cost.to_json()
        entry['paidAt'] = iso(now)
        entry['paidBy'] = cleared_by
        snapshot.append(entry)
    return SettlementPlan(
        ticket_ids=[c.ticket_pk for c in liability.ticket_costs],
        liability=liability,
        pointer=CostPointer(last_cleared_date=now, version=pointer.version + 1),
        paid_at=now,
        cleared_by=cleared_by,
        cleared_by_name=cleared_by_name,
        snapshot=snapshot,
    )


# ---- persistence -------------------------------------------------------------------------

def load_pointer(session) -> CostTrackingPointer:
    """Current pointer row, created on first use."""
    stmt = (select(CostTrackingPointer)
            .where(CostTrackingPointer.type == CostTrackingPointer.TYPE_CURRENT)
            .execution_options(populate_existing=True))
    row = session.execute(stmt).scalar_one_or_none()
    if row:
        return row
    row = CostTrackingPointer(type=CostTrackingPointer.TYPE_CURRENT, last_cleared_date=None, version=0)
    session.add(row)
    try:
        session.commit()
    except IntegrityError:
        # created concurrently; use theirs
        session.rollback()
        row = session.execute(stmt).scalar_one()
    return row


def load_prices(session) -> Dict[str, float]:
    return {name: float(price or 0) for name, price in session.execute(select(Category.name, Category.price))}


def load_candidates(session, pointer: CostPointer) -> List[Ticket]:
    stmt = (select(Ticket)
            .where(Ticket.status.in_(Ticket.TERMINAL_STATUSES),
                   or_(Ticket.paid.is_(False), Ticket.paid.is_(None)),
                   Ticket.created_at >= pointer.lower_bound)
            .order_by(Ticket.created_at.asc(), Ticket.id.asc())
            .execution_options(populate_existing=True))
    return list(session.execute(stmt).scalars())


def _as_pointer(row: CostTrackingPointer) -> CostPointer:
    return CostPointer(last_cleared_date=as_utc(row.last_cleared_date), version=row.version or 0)


def get_current_liability() -> Liability:
    session = get_db()
    pointer = _as_pointer(load_pointer(session))
    return compute_liability(load_candidates(session, pointer), load_prices(session), pointer)


def _apply_plan(session, plan: SettlementPlan, expected_version: int) -> Optional[PaymentHistory]:
    """Run the guarded writes; None when a concurrent settlement got there first."""
    if plan.ticket_ids:
        marked = session.execute(
            update(Ticket)
            .where(Ticket.id.in_(plan.ticket_ids), or_(Ticket.paid.is_(False), Ticket.paid.is_(None)))
            .values(paid=True, paid_at=plan.paid_at, paid_by=plan.cleared_by, updated_at=plan.paid_at)
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount != len(plan.ticket_ids):
            return None
    record = PaymentHistory(**plan.history_values())
    session.add(record)
    session.flush()
    moved = session.execute(
        update(CostTrackingPointer)
        .where(CostTrackingPointer.type == CostTrackingPointer.TYPE_CURRENT,
               CostTrackingPointer.version == expected_version)
        .values(last_cleared_date=plan.pointer.last_cleared_date, cleared_by=plan.cleared_by,
                cleared_at=plan.paid_at, version=plan.pointer.version)
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount != 1:
        return None
    return record


def settle(caller: Caller, now: Optional[datetime] = None, max_attempts: Optional[int] = None) -> PaymentHistory:
    if not is_highest_privilege(caller):
        abort(403, description='Only super admin can clear costs')
    session = get_db()
    if max_attempts is None:
        max_attempts = current_app.config.get('SETTLEMENT_MAX_ATTEMPTS', 3)
    for attempt in range(1, max_attempts + 1):
        pointer = _as_pointer(load_pointer(session))
        plan = plan_settlement(load_candidates(session, pointer), load_prices(session), pointer,
                               now or utcnow(), caller.email, caller.name)
        try:
            record = _apply_plan(session, plan, pointer.version)
            if record is not None:
                session.commit()
        except Exception:
            session.rollback()
            raise
        if record is not None:
            session.expire_all()
            logger.info('Settled %s tickets totalling %.2f (cleared by %s)',
                        len(plan.ticket_ids), plan.liability.total_cost, caller.email)
            return record
        session.rollback()
        logger.warning('Settlement attempt %s/%s lost a race; recomputing', attempt, max_attempts)
    abort(409, description='Costs were cleared concurrently, please retry')


def history_json(record: PaymentHistory) -> Dict[str, Any]:
    return {
        'id': record.id,
        'paymentDate': iso(record.payment_date),
        'totalAmount': float(record.total_amount or 0),
        'ticketCount': record.ticket_count,
        'tickets': record.tickets or [],
        'technicianBreakdown': record.technician_breakdown or [],
        'clearedBy': record.cleared_by,
        'clearedByName': record.cleared_by_name,
        'createdAt': iso(record.created_at),
    }

__all__ = [
    'CostPointer', 'TicketCost', 'EarningsLine', 'Liability', 'SettlementPlan', 'is_billable', 'ticket_cost',
    'aggregate_breakdown', 'compute_liability', 'plan_settlement', 'load_pointer', 'get_current_liability',
    'settle', 'history_json',
]
