"""Tests for notification builders and the logging notifier."""

from __future__ import annotations

import logging

import pytest

from app.core.exceptions import ValidationError
from app.services.discrepancy import notifications
from app.services.discrepancy.notifications import (
    LoggingNotifier,
    Notification,
    NotificationLevel,
)


class TestBuilders:
    def test_discrepancy_detected(self, workflow) -> None:
        case = workflow.report_discrepancy("ORD-1", 150).discrepancy

        note = notifications.discrepancy_detected(case)

        assert note.level is NotificationLevel.WARNING
        assert note.message == "Discrepancy detected: ₹150 for Order #ORD-1"

    def test_verification_messages(self, workflow) -> None:
        verification = workflow.send_verification("ORD-1")
        assert "Order #ORD-1" in notifications.verification_sent(verification).message

        workflow.apply_verification_response(verification.id, "disputed")
        note = notifications.verification_responded(verification)
        assert note.message == "Customer disputed the amount"

    def test_deduction_messages(self, workflow) -> None:
        deduction = workflow.deduct_from_agent("driver-7", 40)
        assert notifications.deduction_processed(deduction).message == (
            "Agent deduction processed: ₹40 for driver-7"
        )

        workflow.reverse_agent_deduction(deduction.id, "customer confirmed")
        assert notifications.deduction_reversed(deduction).message == (
            "Deduction reversed: ₹40 refunded to driver-7"
        )

    def test_bulk_messages_only_when_something_changed(self) -> None:
        assert notifications.bulk_resolved(0) == []
        assert notifications.bulk_escalated(0) == []
        assert notifications.bulk_resolved(3)[0].message == "3 discrepancies resolved"
        assert notifications.bulk_escalated(2)[0].message == (
            "2 cases escalated to management"
        )


def test_logging_notifier_writes_to_log(caplog) -> None:
    logger = logging.getLogger("codrecon")
    logger.propagate = True
    try:
        with caplog.at_level(logging.INFO, logger="codrecon"):
            LoggingNotifier().notify(
                [Notification("warning", "Discrepancy detected: ₹5 for Order #X")]
            )
    finally:
        logger.propagate = False

    assert "Discrepancy detected" in caplog.text
    assert any(r.levelno == logging.WARNING for r in caplog.records)


class TestNotificationLevel:
    def test_string_level_is_converted(self) -> None:
        note = Notification("error", "Deduction failed")

        assert note.level is NotificationLevel.ERROR

    def test_unknown_level_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Notification("loud", "Discrepancy detected")
