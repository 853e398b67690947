"""Case store — the collection of open and closed discrepancy cases.

The store owns creation and every status transition of a
:class:`Discrepancy`.  It does not touch the analytics counters itself;
each mutating call returns a :class:`CaseChange` carrying the delta the
workflow must apply, so the counters move in the same step as the case.

Cases start in ``detected`` (or ``pending_verification`` when the
customer was already contacted) and close by moving to ``escalated`` or
``resolved``.  Escalated cases can still be resolved; ``resolved`` is
terminal.  Moving to the status a case already has is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.services.discrepancy.entities import (
    AnalyticsDelta,
    Discrepancy,
    DiscrepancyStatus,
    IdSequence,
    parse_status,
    require_identifier,
    to_amount,
)

logger = get_logger(__name__)

_CLOSING_STATUSES = (DiscrepancyStatus.RESOLVED, DiscrepancyStatus.ESCALATED)


@dataclass
class CaseChange:
    """Result of a single case mutation."""

    discrepancy: Discrepancy
    delta: AnalyticsDelta = field(default_factory=AnalyticsDelta)
    changed: bool = True


@dataclass
class BulkChange:
    """Result of a bulk mutation: the cases that moved and the summed delta."""

    changed: list[Discrepancy] = field(default_factory=list)
    delta: AnalyticsDelta = field(default_factory=AnalyticsDelta)

    @property
    def count(self) -> int:
        return len(self.changed)


class CaseStore:
    """In-memory discrepancy cases keyed by id, in detection order."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock
        self._cases: dict[str, Discrepancy] = {}
        self._ids = IdSequence("DSC")

    # ── Creation ─────────────────────────────────────────────────────

    def record(
        self,
        order_id: str,
        amount,
        customer_verification_sent: bool = False,
        driver_id: Optional[str] = None,
    ) -> CaseChange:
        """Open a new case for *order_id*.

        A case whose customer has already been contacted starts out in
        ``pending_verification`` so it is counted as a pending verification.
        """
        require_identifier(order_id, "order_id")
        value = to_amount(amount)

        status = (
            DiscrepancyStatus.PENDING_VERIFICATION
            if customer_verification_sent
            else DiscrepancyStatus.DETECTED
        )
        case = Discrepancy(
            id=self._ids.next_id(),
            order_id=order_id,
            amount=value,
            detected_at=self._clock(),
            status=status,
            customer_verification_sent=bool(customer_verification_sent),
            driver_id=driver_id,
        )
        self._cases[case.id] = case

        delta = AnalyticsDelta(
            total_discrepancies=1,
            total_amount=value,
            pending_verifications=1 if customer_verification_sent else 0,
        )
        logger.info(
            "Discrepancy recorded: id=%s order=%s amount=%s status=%s",
            case.id,
            order_id,
            value,
            status.value,
        )
        return CaseChange(case, delta)

    # ── Transitions ──────────────────────────────────────────────────

    def mark_pending(self, case_id: str) -> CaseChange:
        """Move a ``detected`` case to ``pending_verification``.

        Cases in any other status are returned unchanged.
        """
        case = self.get(case_id)
        case.customer_verification_sent = True
        if case.status is not DiscrepancyStatus.DETECTED:
            return CaseChange(case, changed=False)
        case.status = DiscrepancyStatus.PENDING_VERIFICATION
        return CaseChange(case, AnalyticsDelta(pending_verifications=1))

    def update_status(
        self,
        case_id: str,
        new_status,
        resolution: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CaseChange:
        """Resolve or escalate a case.

        For escalation, *notes* is stored as the escalation reason.

        Raises:
            NotFoundError: unknown *case_id*.
            ValidationError: *new_status* is not ``resolved`` or ``escalated``.
            InvalidStateError: the case is already resolved.
        """
        target = parse_status(DiscrepancyStatus, new_status)
        if target not in _CLOSING_STATUSES:
            raise ValidationError(
                f"Cases can only be moved to resolved or escalated, not {target.value!r}"
            )
        case = self.get(case_id)

        if case.status is target:
            return CaseChange(case, changed=False)
        if case.status is DiscrepancyStatus.RESOLVED:
            raise InvalidStateError(
                f"Discrepancy {case_id} is resolved and cannot be {target.value}"
            )

        if target is DiscrepancyStatus.RESOLVED:
            delta = self._resolve(case, resolution, notes)
        else:
            delta = self._escalate(case, notes)

        logger.info("Discrepancy %s -> %s", case_id, target.value)
        return CaseChange(case, delta)

    def bulk_resolve(
        self,
        case_ids: Iterable[str],
        resolution: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BulkChange:
        """Resolve every distinct, known, not-yet-resolved case in *case_ids*."""
        result = BulkChange()
        for case in self._eligible(case_ids, DiscrepancyStatus.RESOLVED):
            result.delta = result.delta + self._resolve(case, resolution, notes)
            result.changed.append(case)
        logger.info("Bulk resolve: changed=%d", result.count)
        return result

    def bulk_escalate(
        self,
        case_ids: Iterable[str],
        reason: Optional[str] = None,
    ) -> BulkChange:
        """Escalate every distinct, known, open, not-yet-escalated case."""
        result = BulkChange()
        for case in self._eligible(case_ids, DiscrepancyStatus.ESCALATED):
            result.delta = result.delta + self._escalate(case, reason)
            result.changed.append(case)
        logger.info("Bulk escalate: changed=%d", result.count)
        return result

    # ── Queries ──────────────────────────────────────────────────────

    def get(self, case_id: str) -> Discrepancy:
        try:
            return self._cases[case_id]
        except KeyError:
            raise NotFoundError(f"Discrepancy {case_id!r} not found") from None

    def list_cases(
        self,
        status=None,
        order_id: Optional[str] = None,
    ) -> list[Discrepancy]:
        wanted = parse_status(DiscrepancyStatus, status) if status else None
        return [
            case
            for case in self._cases.values()
            if (wanted is None or case.status is wanted)
            and (order_id is None or case.order_id == order_id)
        ]

    def find_pending_for_order(self, order_id: str) -> Optional[Discrepancy]:
        """Most recently detected case for *order_id* still awaiting the customer."""
        pending = self.list_cases(DiscrepancyStatus.PENDING_VERIFICATION, order_id)
        return pending[-1] if pending else None

    def __len__(self) -> int:
        return len(self._cases)

    # ── State management ─────────────────────────────────────────────

    def load(self, cases: Iterable[Discrepancy]) -> None:
        """Replace the store contents, e.g. when restoring a snapshot."""
        self._cases = {case.id: case for case in cases}
        self._ids.advance_past(self._cases)

    def clear(self) -> None:
        self._cases.clear()
        self._ids = IdSequence("DSC")

    # ── Private helpers ──────────────────────────────────────────────

    def _eligible(self, case_ids: Iterable[str], target: DiscrepancyStatus):
        seen: set[str] = set()
        for case_id in case_ids:
            if case_id in seen:
                continue
            seen.add(case_id)
            case = self._cases.get(case_id)
            if case is None:
                logger.debug("Bulk %s: skipping unknown id %s", target.value, case_id)
                continue
            if case.status is target or case.status is DiscrepancyStatus.RESOLVED:
                logger.debug(
                    "Bulk %s: skipping %s (status=%s)",
                    target.value,
                    case_id,
                    case.status.value,
                )
                continue
            yield case

    def _resolve(
        self,
        case: Discrepancy,
        resolution: Optional[str],
        notes: Optional[str],
    ) -> AnalyticsDelta:
        was_pending = case.status is DiscrepancyStatus.PENDING_VERIFICATION
        case.status = DiscrepancyStatus.RESOLVED
        case.resolution = resolution
        case.resolution_notes = notes
        case.resolved_at = self._clock()
        return AnalyticsDelta(
            pending_verifications=-1 if was_pending else 0,
            resolved=1,
        )

    def _escalate(self, case: Discrepancy, reason: Optional[str]) -> AnalyticsDelta:
        was_pending = case.status is DiscrepancyStatus.PENDING_VERIFICATION
        case.status = DiscrepancyStatus.ESCALATED
        case.escalation_reason = reason
        case.escalated_at = self._clock()
        return AnalyticsDelta(
            pending_verifications=-1 if was_pending else 0,
            escalated_cases=1,
        )
