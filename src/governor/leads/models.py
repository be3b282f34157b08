"""
SQLAlchemy models for lead sources and leads.

Rows are written by the lead import pipeline and the telephony executor;
the governor only reads them.
"""

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from governor.shared.database import Base

TERMINAL_LEAD_STATUSES: frozenset[str] = frozenset(
    {
        "not_interested",
        "dead_lead",
        "booked",
        "do_not_call",
        "wrong_number",
        "disqualified",
    }
)


class LeadSource(Base):
    """A connected lead sheet or integration."""

    __tablename__ = "lead_sources"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Lead(Base):
    """A person the dialer may call."""

    __tablename__ = "leads"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    source_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("lead_sources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(64), nullable=False, default="new")
    total_calls_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, status={self.status})>"
