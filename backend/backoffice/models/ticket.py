from __future__ import annotations
from typing import Optional, List
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, JSON, DateTime
from backoffice.models.authz import Base
from backoffice.utils.timeutil import utcnow


class Ticket(Base):
    __tablename__ = 'tickets'
    # Status constants
    STATUS_OPEN = 'open'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_RESOLVED = 'resolved'
    STATUS_CLOSED = 'closed'
    ALL_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_RESOLVED, STATUS_CLOSED)
    TERMINAL_STATUSES = (STATUS_RESOLVED, STATUS_CLOSED)
    OPEN_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    client_name: Mapped[str] = mapped_column(String(128), nullable=False)
    client_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    station: Mapped[str] = mapped_column(String(128), nullable=False, default='')
    house_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    problem_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date_time_reported: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_OPEN, index=True)
    technicians: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    # Legacy single-technician column, mirrors technicians[0]
    technician: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_reminder_sent: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def assigned_technicians(self) -> List[str]:
        """Technician set, falling back to the legacy single field on old rows."""
        if self.technicians:
            return list(self.technicians)
        if self.technician:
            return [self.technician]
        return []

    def set_technicians(self, names: List[str]):
        self.technicians = list(names)
        self.technician = names[0] if names else None

# Status flow: open -> in-progress -> resolved -> closed; resolved/closed may be re-opened.
# A resolved or closed ticket becomes billable until a settlement flips paid.
