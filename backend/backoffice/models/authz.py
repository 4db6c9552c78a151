from __future__ import annotations
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, JSON, DateTime
from typing import List, Dict, Any
from datetime import datetime

from backoffice.constants.pages import ROLE_USER, ROLE_SUPERADMIN
from backoffice.utils.timeutil import utcnow

Base = declarative_base()


class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False, default='')
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, default='')
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_USER, index=True)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # [{"pageId": "tickets", "permissions": ["view", "edit"]}, ...]
    page_permissions: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_superadmin(self) -> bool:
        return self.role == ROLE_SUPERADMIN

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw)

__all__ = ['Base', 'User']
