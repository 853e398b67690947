"""Deduction and escalation policy for cash-on-delivery shortfalls.

Decides, for a freshly detected discrepancy, how much (if anything) to
deduct from the agent automatically and whether the case is large enough
to go straight to management.

The rules:
  * Only shortfalls (collected < expected) are deducted.
  * Shortfalls below ``threshold`` are left to customer verification.
  * The deducted share is ``percentage`` % of the shortfall, capped by what
    is left of the agent's ``max_daily`` allowance for the day.
  * Any discrepancy whose absolute amount reaches ``escalation_threshold``
    is escalated immediately, shortfall or overcharge.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.core.config import Settings

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class DeductionPolicy:
    """Thresholds governing automatic agent deductions."""

    threshold: Decimal = Decimal("50")
    percentage: Decimal = Decimal("100")
    max_daily: Decimal = Decimal("500")
    escalation_threshold: Decimal = Decimal("200")

    @classmethod
    def from_settings(cls, config: Settings) -> "DeductionPolicy":
        return cls(
            threshold=Decimal(str(config.deduction_threshold)),
            percentage=Decimal(str(config.deduction_percentage)),
            max_daily=Decimal(str(config.max_daily_deduction)),
            escalation_threshold=Decimal(str(config.escalation_threshold)),
        )

    def deduction_for(self, amount: Decimal, already_deducted: Decimal) -> Decimal:
        """Amount to deduct for a discrepancy of *amount* (collected − expected).

        Args:
            amount: Signed discrepancy; negative means the agent is short.
            already_deducted: Driver's processed deductions so far today.

        Returns:
            A non-negative amount rounded to cents; zero means no deduction.
        """
        if amount >= 0:
            return Decimal("0")
        shortfall = -amount
        if shortfall < self.threshold:
            return Decimal("0")

        wanted = (shortfall * self.percentage / Decimal("100")).quantize(_CENT)
        remaining = self.max_daily - already_deducted
        if remaining <= 0:
            return Decimal("0")
        return min(wanted, remaining)

    def should_escalate(self, amount: Decimal) -> bool:
        return abs(amount) >= self.escalation_threshold
