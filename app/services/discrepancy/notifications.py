"""User-facing notifications for workflow outcomes.

Commands never notify anyone themselves.  After a command returns, the
caller turns its result into :class:`Notification` objects here and hands
them to a notifier.  The only notifier shipped writes to the log; real SMS
or push delivery would be another implementation of ``notify``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from app.core.logging import get_logger
from app.services.discrepancy.entities import (
    AgentDeduction,
    CustomerVerification,
    Discrepancy,
    VerificationStatus,
    parse_status,
)

logger = get_logger(__name__)

CURRENCY_SYMBOL = "₹"

_VERIFICATION_MESSAGES = {
    VerificationStatus.CONFIRMED: "Customer confirmed the amount",
    VerificationStatus.DISPUTED: "Customer disputed the amount",
    VerificationStatus.EXPIRED: "Verification request expired",
    VerificationStatus.RESOLVED: "Verification resolved",
}


class NotificationLevel(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str

    def __post_init__(self) -> None:
        # Accept plain strings; unknown levels raise ValidationError
        level = parse_status(NotificationLevel, self.level)
        object.__setattr__(self, "level", level)


class Notifier(Protocol):
    def notify(self, notifications: Iterable[Notification]) -> None: ...


class LoggingNotifier:
    """Delivers notifications to the application log."""

    _LEVELS = {
        NotificationLevel.INFO: logging.INFO,
        NotificationLevel.SUCCESS: logging.INFO,
        NotificationLevel.WARNING: logging.WARNING,
        NotificationLevel.ERROR: logging.ERROR,
    }

    def notify(self, notifications: Iterable[Notification]) -> None:
        for note in notifications:
            logger.log(
                self._LEVELS[note.level], "[%s] %s", note.level.value, note.message
            )


def _money(amount: Decimal) -> str:
    return f"{CURRENCY_SYMBOL}{amount}"


def discrepancy_detected(case: Discrepancy) -> Notification:
    return Notification(
        NotificationLevel.WARNING,
        f"Discrepancy detected: {_money(case.amount)} for Order #{case.order_id}",
    )


def discrepancy_status_changed(case: Discrepancy) -> Notification:
    return Notification(
        NotificationLevel.SUCCESS, f"Discrepancy #{case.id} {case.status.value}"
    )


def verification_sent(verification: CustomerVerification) -> Notification:
    return Notification(
        NotificationLevel.INFO,
        f"Verification SMS sent to customer for Order #{verification.order_id}",
    )


def verification_responded(verification: CustomerVerification) -> Notification:
    message = _VERIFICATION_MESSAGES.get(
        verification.status, "Verification status updated"
    )
    return Notification(NotificationLevel.SUCCESS, message)


def deduction_processed(deduction: AgentDeduction) -> Notification:
    return Notification(
        NotificationLevel.WARNING,
        f"Agent deduction processed: {_money(deduction.amount)} "
        f"for {deduction.driver_id}",
    )


def deduction_reversed(deduction: AgentDeduction) -> Notification:
    return Notification(
        NotificationLevel.SUCCESS,
        f"Deduction reversed: {_money(deduction.amount)} "
        f"refunded to {deduction.driver_id}",
    )


def bulk_resolved(count: int) -> list[Notification]:
    if count <= 0:
        return []
    return [
        Notification(NotificationLevel.SUCCESS, f"{count} discrepancies resolved")
    ]


def bulk_escalated(count: int) -> list[Notification]:
    if count <= 0:
        return []
    return [
        Notification(
            NotificationLevel.WARNING, f"{count} cases escalated to management"
        )
    ]
