"""Delivery-agent deduction ledger.

A deduction removes money from what we owe an agent to cover a cash
shortfall.  If the customer later proves the agent right, the deduction is
reversed.  Reversal is one-way and happens at most once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.services.discrepancy.entities import (
    AgentDeduction,
    DeductionStatus,
    IdSequence,
    require_identifier,
    to_amount,
)

logger = get_logger(__name__)


@dataclass
class DriverDeductionSummary:
    """Processed (non-reversed) deductions for one driver on one day.

    Attributes:
        driver_id: The agent the summary is for.
        day: Calendar day of ``processed_at``.
        total: Sum of the deducted amounts.
        breakdown: The contributing deductions, oldest first.
    """

    driver_id: str
    day: date
    total: Decimal = Decimal("0")
    breakdown: list[AgentDeduction] = field(default_factory=list)

    @property
    def orders_affected(self) -> int:
        return len({d.order_id for d in self.breakdown if d.order_id})

    @property
    def average_deduction(self) -> Decimal:
        if not self.breakdown:
            return Decimal("0")
        return self.total / len(self.breakdown)


class DeductionLedger:
    """In-memory agent deductions keyed by id."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock
        self._deductions: dict[str, AgentDeduction] = {}
        self._ids = IdSequence("DED")

    def process(
        self,
        driver_id: str,
        amount,
        order_id: Optional[str] = None,
        reason: str = "cod_discrepancy",
        auto_processed: bool = False,
    ) -> AgentDeduction:
        """Book a deduction of *amount* (must be > 0) against *driver_id*."""
        require_identifier(driver_id, "driver_id")
        value = to_amount(amount)
        if value <= 0:
            raise ValidationError(f"Deduction amount must be positive, got {value}")

        deduction = AgentDeduction(
            id=self._ids.next_id(),
            driver_id=driver_id,
            amount=value,
            processed_at=self._clock(),
            order_id=order_id,
            reason=reason,
            auto_processed=auto_processed,
        )
        self._deductions[deduction.id] = deduction
        logger.info(
            "Agent deduction processed: id=%s driver=%s amount=%s order=%s",
            deduction.id,
            driver_id,
            value,
            order_id,
        )
        return deduction

    def reverse(self, deduction_id: str, reason: Optional[str]) -> AgentDeduction:
        """Reverse a processed deduction.

        Raises:
            NotFoundError: unknown *deduction_id*.
            InvalidStateError: the deduction was already reversed.
        """
        deduction = self.get(deduction_id)
        if deduction.status is DeductionStatus.REVERSED:
            raise InvalidStateError(f"Deduction {deduction_id} is already reversed")

        deduction.status = DeductionStatus.REVERSED
        deduction.reversal_reason = reason
        deduction.reversed_at = self._clock()
        logger.info(
            "Agent deduction reversed: id=%s driver=%s amount=%s",
            deduction_id,
            deduction.driver_id,
            deduction.amount,
        )
        return deduction

    def get(self, deduction_id: str) -> AgentDeduction:
        try:
            return self._deductions[deduction_id]
        except KeyError:
            raise NotFoundError(f"Deduction {deduction_id!r} not found") from None

    def list_deductions(self, driver_id: Optional[str] = None) -> list[AgentDeduction]:
        return [
            d
            for d in self._deductions.values()
            if driver_id is None or d.driver_id == driver_id
        ]

    def daily_summary(self, driver_id: str, day: date) -> DriverDeductionSummary:
        """Total of the driver's still-processed deductions booked on *day*."""
        summary = DriverDeductionSummary(driver_id=driver_id, day=day)
        for deduction in self.list_deductions(driver_id):
            if deduction.status is not DeductionStatus.PROCESSED:
                continue
            if deduction.processed_at.date() != day:
                continue
            summary.breakdown.append(deduction)
            summary.total += deduction.amount
        return summary

    def __len__(self) -> int:
        return len(self._deductions)

    def load(self, deductions: Iterable[AgentDeduction]) -> None:
        self._deductions = {d.id: d for d in deductions}
        self._ids.advance_past(self._deductions)

    def clear(self) -> None:
        self._deductions.clear()
        self._ids = IdSequence("DED")
