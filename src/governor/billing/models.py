"""
SQLAlchemy models for the prepaid balance and the per-call spend ledger.

Both tables are owned by billing and telephony; the governor reads them.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from governor.shared.database import Base


class CallBalance(Base):
    __tablename__ = "call_balances"

    account_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_refill_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class CallRecord(Base):
    """Append-only ledger entry for one placed call."""

    __tablename__ = "call_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    run_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    lead_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    outcome: Mapped[str | None] = mapped_column(String(64), nullable=True)
    appointment_booked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
