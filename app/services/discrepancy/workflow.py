"""Discrepancy workflow — the single entry point for every mutation.

The workflow composes the case store, the two ledgers and the analytics
aggregator into commands that match what happens in the field:

  1. An agent completes a COD delivery and the collected cash does not
     match the order (``settle_collection`` / ``report_discrepancy``).
  2. The customer is asked to confirm the amount (``send_verification``)
     and answers (``apply_verification_response``).
  3. Operations resolves or escalates the case, one at a time or in bulk.
  4. The agent's ledger is corrected (``deduct_from_agent``) and, if the
     customer later backs the agent, corrected back
     (``reverse_agent_deduction``).

Every command runs under one lock and applies its analytics delta before
releasing it, so a snapshot taken between commands always agrees with the
case collections.  Commands do no I/O; callers build notifications from
the returned records afterwards (see ``notifications.py``).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from app.core.clock import Clock, utc_now
from app.core.logging import get_logger
from app.services.discrepancy.analytics import AnalyticsAggregator
from app.services.discrepancy.case_store import CaseStore
from app.services.discrepancy.deduction_ledger import (
    DeductionLedger,
    DriverDeductionSummary,
)
from app.services.discrepancy.entities import (
    AgentDeduction,
    Analytics,
    CustomerVerification,
    Discrepancy,
    DiscrepancyStatus,
    VerificationStatus,
    require_identifier,
    to_amount,
)
from app.services.discrepancy.policy import DeductionPolicy
from app.services.discrepancy.verification_ledger import VerificationLedger

logger = get_logger(__name__)

_RESOLVING_RESPONSES = {
    VerificationStatus.CONFIRMED: "customer_confirmed",
    VerificationStatus.RESOLVED: "verification_resolved",
}


@dataclass
class ReportOutcome:
    discrepancy: Discrepancy
    verification: Optional[CustomerVerification] = None


@dataclass
class VerificationOutcome:
    """The closed verification and the case it affected, if any."""

    verification: CustomerVerification
    discrepancy: Optional[Discrepancy] = None


@dataclass
class SettlementOutcome:
    """Everything ``settle_collection`` did for one delivery.

    All fields stay empty when the collected amount matched the order.
    """

    amount: Decimal = Decimal("0")
    discrepancy: Optional[Discrepancy] = None
    verification: Optional[CustomerVerification] = None
    deduction: Optional[AgentDeduction] = None
    escalated: bool = False


@dataclass
class WorkflowState:
    """Plain copy of everything the workflow holds, for snapshots."""

    discrepancies: list[Discrepancy] = field(default_factory=list)
    verifications: list[CustomerVerification] = field(default_factory=list)
    deductions: list[AgentDeduction] = field(default_factory=list)
    analytics: Analytics = field(default_factory=Analytics)


class DiscrepancyWorkflow:
    """Owns the discrepancy cases, both ledgers and the analytics counters."""

    def __init__(
        self,
        clock: Clock = utc_now,
        policy: Optional[DeductionPolicy] = None,
    ) -> None:
        self._clock = clock
        self.policy = policy or DeductionPolicy()
        self._lock = threading.RLock()
        self._cases = CaseStore(clock)
        self._verifications = VerificationLedger(clock)
        self._deductions = DeductionLedger(clock)
        self._analytics = AnalyticsAggregator()

    # ── Case commands ────────────────────────────────────────────────

    def report_discrepancy(
        self,
        order_id: str,
        amount,
        send_verification: bool = False,
        driver_id: Optional[str] = None,
    ) -> ReportOutcome:
        """Open a case and, optionally, ask the customer to confirm the amount."""
        with self._lock:
            return self._report(order_id, amount, send_verification, driver_id)

    def resolve_case(
        self,
        discrepancy_id: str,
        resolution: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Discrepancy:
        return self.update_status(
            discrepancy_id, DiscrepancyStatus.RESOLVED, resolution, notes
        )

    def escalate_case(
        self, discrepancy_id: str, reason: Optional[str] = None
    ) -> Discrepancy:
        return self.update_status(
            discrepancy_id, DiscrepancyStatus.ESCALATED, notes=reason
        )

    def update_status(
        self,
        discrepancy_id: str,
        status,
        resolution: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Discrepancy:
        with self._lock:
            change = self._cases.update_status(
                discrepancy_id, status, resolution, notes
            )
            self._analytics.apply(change.delta)
            return change.discrepancy

    def bulk_resolve(
        self,
        discrepancy_ids: Iterable[str],
        resolution: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Resolve many cases; returns how many actually changed."""
        with self._lock:
            change = self._cases.bulk_resolve(list(discrepancy_ids), resolution, notes)
            self._analytics.apply(change.delta)
            return change.count

    def bulk_escalate(
        self, discrepancy_ids: Iterable[str], reason: Optional[str] = None
    ) -> int:
        """Escalate many cases; returns how many actually changed."""
        with self._lock:
            change = self._cases.bulk_escalate(list(discrepancy_ids), reason)
            self._analytics.apply(change.delta)
            return change.count

    # ── Verification commands ────────────────────────────────────────

    def send_verification(self, order_id: str) -> CustomerVerification:
        """Send (or re-send) a verification for an order.

        Any ``detected`` case for the order moves to ``pending_verification``.
        """
        with self._lock:
            verification = self._verifications.send(order_id)
            self._mark_order_pending(order_id)
            return verification

    def apply_verification_response(
        self,
        verification_id: str,
        status,
        response: Optional[str] = None,
    ) -> VerificationOutcome:
        """Record the customer's answer and move the linked case accordingly.

        ``confirmed`` / ``resolved`` resolve the order's pending case,
        ``disputed`` flags it and keeps it pending, ``expired`` leaves it
        for manual escalation.
        """
        with self._lock:
            verification = self._verifications.record_response(
                verification_id, status, response
            )
            case = self._cases.find_pending_for_order(verification.order_id)
            if case is None:
                logger.info(
                    "No pending case for order %s; verification %s stands alone",
                    verification.order_id,
                    verification_id,
                )
                return VerificationOutcome(verification)

            if verification.status in _RESOLVING_RESPONSES:
                change = self._cases.update_status(
                    case.id,
                    DiscrepancyStatus.RESOLVED,
                    resolution=_RESOLVING_RESPONSES[verification.status],
                    notes=response,
                )
                self._analytics.apply(change.delta)
            elif verification.status is VerificationStatus.DISPUTED:
                case.dispute_flagged = True
                logger.info("Discrepancy %s disputed by customer", case.id)
            return VerificationOutcome(verification, case)

    # ── Agent ledger commands ────────────────────────────────────────

    def deduct_from_agent(
        self,
        driver_id: str,
        amount,
        order_id: Optional[str] = None,
        reason: str = "cod_discrepancy",
    ) -> AgentDeduction:
        with self._lock:
            return self._deductions.process(driver_id, amount, order_id, reason)

    def reverse_agent_deduction(
        self, deduction_id: str, reason: Optional[str] = None
    ) -> AgentDeduction:
        """Reverse a deduction.  Case counters are deliberately left alone."""
        with self._lock:
            return self._deductions.reverse(deduction_id, reason)

    # ── Composite command ────────────────────────────────────────────

    def settle_collection(
        self,
        order_id: str,
        driver_id: str,
        expected_amount,
        collected_amount,
    ) -> SettlementOutcome:
        """Reconcile the cash an agent collected for one order.

        A mismatch opens a case with a customer verification, books an
        automatic deduction for large enough shortfalls and escalates cases
        over the escalation threshold.
        """
        require_identifier(order_id, "order_id")
        require_identifier(driver_id, "driver_id")
        expected = to_amount(expected_amount, "expected_amount")
        collected = to_amount(collected_amount, "collected_amount")
        amount = collected - expected

        with self._lock:
            if amount == 0:
                logger.info("Collection for order %s matches; nothing to do", order_id)
                return SettlementOutcome()

            report = self._report(order_id, amount, True, driver_id)
            outcome = SettlementOutcome(
                amount=amount,
                discrepancy=report.discrepancy,
                verification=report.verification,
            )

            today = self._clock().date()
            already = self._deductions.daily_summary(driver_id, today).total
            to_deduct = self.policy.deduction_for(amount, already)
            if to_deduct > 0:
                outcome.deduction = self._deductions.process(
                    driver_id, to_deduct, order_id=order_id, auto_processed=True
                )

            if self.policy.should_escalate(amount):
                change = self._cases.update_status(
                    report.discrepancy.id,
                    DiscrepancyStatus.ESCALATED,
                    notes=(
                        f"Discrepancy of {abs(amount)} reaches escalation "
                        f"threshold {self.policy.escalation_threshold}"
                    ),
                )
                self._analytics.apply(change.delta)
                outcome.escalated = True

            logger.info(
                "Collection settled: order=%s driver=%s amount=%s deducted=%s "
                "escalated=%s",
                order_id,
                driver_id,
                amount,
                outcome.deduction.amount if outcome.deduction else 0,
                outcome.escalated,
            )
            return outcome

    # ── Queries ──────────────────────────────────────────────────────

    def analytics(self) -> Analytics:
        with self._lock:
            return self._analytics.snapshot()

    def get_discrepancy(self, discrepancy_id: str) -> Discrepancy:
        with self._lock:
            return self._cases.get(discrepancy_id)

    def list_discrepancies(
        self, status=None, order_id: Optional[str] = None
    ) -> list[Discrepancy]:
        with self._lock:
            return self._cases.list_cases(status, order_id)

    def get_verification(self, verification_id: str) -> CustomerVerification:
        with self._lock:
            return self._verifications.get(verification_id)

    def list_verifications(
        self, order_id: Optional[str] = None
    ) -> list[CustomerVerification]:
        with self._lock:
            return self._verifications.list_verifications(order_id)

    def get_deduction(self, deduction_id: str) -> AgentDeduction:
        with self._lock:
            return self._deductions.get(deduction_id)

    def list_deductions(self, driver_id: Optional[str] = None) -> list[AgentDeduction]:
        with self._lock:
            return self._deductions.list_deductions(driver_id)

    def driver_daily_deductions(
        self, driver_id: str, day: Optional[date] = None
    ) -> DriverDeductionSummary:
        with self._lock:
            return self._deductions.daily_summary(
                driver_id, day or self._clock().date()
            )

    # ── State management ─────────────────────────────────────────────

    def reset(self) -> None:
        """Drop every case, verification, deduction and counter."""
        with self._lock:
            self._cases.clear()
            self._verifications.clear()
            self._deductions.clear()
            self._analytics.reset()
            logger.info("Discrepancy workflow state reset")

    def export_state(self) -> WorkflowState:
        """Copy of the current state, detached from the live records."""
        with self._lock:
            return WorkflowState(
                discrepancies=[replace(c) for c in self._cases.list_cases()],
                verifications=[
                    replace(v) for v in self._verifications.list_verifications()
                ],
                deductions=[replace(d) for d in self._deductions.list_deductions()],
                analytics=self._analytics.snapshot(),
            )

    @classmethod
    def from_state(
        cls,
        state: WorkflowState,
        clock: Clock = utc_now,
        policy: Optional[DeductionPolicy] = None,
    ) -> "DiscrepancyWorkflow":
        workflow = cls(clock=clock, policy=policy)
        workflow._cases.load(state.discrepancies)
        workflow._verifications.load(state.verifications)
        workflow._deductions.load(state.deductions)
        workflow._analytics = AnalyticsAggregator(state.analytics)
        return workflow

    # ── Private helpers ──────────────────────────────────────────────

    def _report(
        self,
        order_id: str,
        amount,
        send_verification: bool,
        driver_id: Optional[str],
    ) -> ReportOutcome:
        # Validate before touching the verification ledger
        require_identifier(order_id, "order_id")
        value = to_amount(amount)

        verification = None
        if send_verification:
            verification = self._verifications.send(order_id)
            self._mark_order_pending(order_id)
        change = self._cases.record(
            order_id,
            value,
            customer_verification_sent=send_verification,
            driver_id=driver_id,
        )
        self._analytics.apply(change.delta)
        return ReportOutcome(change.discrepancy, verification)

    def _mark_order_pending(self, order_id: str) -> None:
        # Every detected case of the order now waits on the customer
        for case in self._cases.list_cases(DiscrepancyStatus.DETECTED, order_id):
            change = self._cases.mark_pending(case.id)
            self._analytics.apply(change.delta)
