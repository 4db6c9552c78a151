from __future__ import annotations
from typing import Optional, List, Dict, Any
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Numeric, JSON, DateTime
from .authz import Base
from backoffice.utils.timeutil import utcnow


class PaymentHistory(Base):
    """Append-only log of settlement batches; rows are never updated."""
    __tablename__ = 'payment_history'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    total_amount: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tickets: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    technician_breakdown: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    cleared_by: Mapped[str] = mapped_column(String(128), nullable=False)
    cleared_by_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CostTrackingPointer(Base):
    """Singleton row (type='current') marking the start of the unsettled window."""
    __tablename__ = 'cost_tracking'
    TYPE_CURRENT = 'current'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(16), unique=True, nullable=False, default=TYPE_CURRENT)
    last_cleared_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cleared_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    cleared_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

__all__ = ["PaymentHistory", "CostTrackingPointer"]
