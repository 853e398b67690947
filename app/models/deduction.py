"""Agent deduction model — money withheld from a delivery agent."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class AgentDeductionRecord(Base):
    __tablename__ = "agent_deductions"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    driver_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    order_id: Mapped[Optional[str]] = mapped_column(String(100))
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(
        String(50),
        default="cod_discrepancy",
    )
    auto_processed: Mapped[bool] = mapped_column(Boolean, default=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="processed | reversed",
    )
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return (
            f"<AgentDeductionRecord(id={self.id!r}, driver_id={self.driver_id!r}, "
            f"status={self.status!r})>"
        )
