"""In-memory entities for the COD discrepancy workflow.

A *discrepancy* is what we open when a delivery agent hands over a different
amount than the order owed.  Verifications are the SMS outreach asking the
customer to confirm what they paid, and deductions are the corrections we
book against the agent's payable balance.
"""

from __future__ import annotations

import enum
import itertools
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from app.core.exceptions import ValidationError

CENT = Decimal("0.01")


class DiscrepancyStatus(str, enum.Enum):
    DETECTED = "detected"
    PENDING_VERIFICATION = "pending_verification"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class VerificationStatus(str, enum.Enum):
    SENT = "sent"
    CONFIRMED = "confirmed"
    DISPUTED = "disputed"
    EXPIRED = "expired"
    RESOLVED = "resolved"

    @property
    def is_terminal(self) -> bool:
        return self is not VerificationStatus.SENT


class DeductionStatus(str, enum.Enum):
    PROCESSED = "processed"
    REVERSED = "reversed"


@dataclass
class Discrepancy:
    """One detected mismatch between expected and collected payment.

    ``amount`` is signed: collected minus expected, so a shortfall is negative.
    """

    id: str
    order_id: str
    amount: Decimal
    detected_at: datetime
    status: DiscrepancyStatus = DiscrepancyStatus.DETECTED
    customer_verification_sent: bool = False
    driver_id: Optional[str] = None
    dispute_flagged: bool = False
    resolution: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    escalated_at: Optional[datetime] = None


@dataclass
class CustomerVerification:
    """A single outreach attempt asking the customer to confirm an amount."""

    id: str
    order_id: str
    sent_at: datetime
    status: VerificationStatus = VerificationStatus.SENT
    customer_response: Optional[str] = None
    responded_at: Optional[datetime] = None


@dataclass
class AgentDeduction:
    """Ledger entry removing funds from a delivery agent's payable balance."""

    id: str
    driver_id: str
    amount: Decimal
    processed_at: datetime
    status: DeductionStatus = DeductionStatus.PROCESSED
    order_id: Optional[str] = None
    reason: str = "cod_discrepancy"
    auto_processed: bool = False
    reversal_reason: Optional[str] = None
    reversed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Analytics:
    """Point-in-time view of the running workflow counters."""

    total_discrepancies: int = 0
    pending_verifications: int = 0
    escalated_cases: int = 0
    total_amount: Decimal = Decimal("0")
    resolved: int = 0


@dataclass(frozen=True)
class AnalyticsDelta:
    """Increment to apply to :class:`Analytics` for one command."""

    total_discrepancies: int = 0
    pending_verifications: int = 0
    escalated_cases: int = 0
    total_amount: Decimal = Decimal("0")
    resolved: int = 0

    def __add__(self, other: "AnalyticsDelta") -> "AnalyticsDelta":
        return AnalyticsDelta(
            total_discrepancies=self.total_discrepancies + other.total_discrepancies,
            pending_verifications=(
                self.pending_verifications + other.pending_verifications
            ),
            escalated_cases=self.escalated_cases + other.escalated_cases,
            total_amount=self.total_amount + other.total_amount,
            resolved=self.resolved + other.resolved,
        )

    @property
    def is_empty(self) -> bool:
        return self == AnalyticsDelta()


class IdSequence:
    """Hands out distinct, increasing ids such as ``DSC-000001``."""

    def __init__(self, prefix: str, start: int = 1) -> None:
        self.prefix = prefix
        self.start = start
        self._counter = itertools.count(start)

    def next_id(self) -> str:
        return f"{self.prefix}-{next(self._counter):06d}"

    def advance_past(self, existing_ids) -> None:
        """Restart numbering after the highest id in *existing_ids*."""
        highest = self.start - 1
        for raw in existing_ids:
            _, _, number = raw.rpartition("-")
            if number.isdigit():
                highest = max(highest, int(number))
        self._counter = itertools.count(highest + 1)


# ── Input coercion ───────────────────────────────────────────────────


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """Convert user input to a finite ``Decimal`` in whole cents.

    Raises ValidationError for anything else, including sub-cent amounts
    that the snapshot tables could not store exactly.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    try:
        exact = amount == amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"{field_name} is out of range, got {value!r}")
    if not exact:
        raise ValidationError(
            f"{field_name} cannot have more than two decimal places, got {value!r}"
        )
    return amount


def require_identifier(value: Any, field_name: str) -> str:
    """Reject empty / blank identifiers."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")
    return value


def parse_status(enum_cls: type[enum.Enum], value: Any) -> Any:
    """Map a string literal onto *enum_cls*, raising ValidationError if unknown."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {enum_cls.__name__} {value!r}; expected one of: {allowed}"
        )
