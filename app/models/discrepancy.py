"""Discrepancy case model — flat snapshot of one COD payment mismatch."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class DiscrepancyCase(Base):
    """Persisted copy of an in-memory ``Discrepancy``.

    Rows are keyed by the workflow id and overwritten on every snapshot.
    """

    __tablename__ = "discrepancy_cases"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    driver_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        comment="collected - expected; negative means a shortfall",
    )
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="detected | pending_verification | escalated | resolved",
    )
    customer_verification_sent: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    dispute_flagged: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    resolution: Mapped[Optional[str]] = mapped_column(String(50))
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    escalation_reason: Mapped[Optional[str]] = mapped_column(Text)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return (
            f"<DiscrepancyCase(id={self.id!r}, order_id={self.order_id!r}, "
            f"status={self.status!r})>"
        )
