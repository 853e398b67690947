"""Customer verification model — one outreach asking a customer to confirm."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class CustomerVerificationRecord(Base):
    __tablename__ = "customer_verifications"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="sent | confirmed | disputed | expired | resolved",
    )
    customer_response: Mapped[Optional[str]] = mapped_column(Text)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return (
            f"<CustomerVerificationRecord(id={self.id!r}, "
            f"order_id={self.order_id!r}, status={self.status!r})>"
        )
