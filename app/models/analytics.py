"""Single-row table holding the workflow's running counters."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

ANALYTICS_ROW_ID = 1


class DiscrepancyAnalyticsRecord(Base):
    __tablename__ = "discrepancy_analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    total_discrepancies: Mapped[int] = mapped_column(Integer, default=0)
    pending_verifications: Mapped[int] = mapped_column(Integer, default=0)
    escalated_cases: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    resolved: Mapped[int] = mapped_column(Integer, default=0)
