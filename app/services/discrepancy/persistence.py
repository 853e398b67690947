"""Snapshot persistence for the discrepancy workflow.

The workflow lives in memory.  ``save_state`` copies it into flat tables
keyed by id, and ``load_workflow`` rebuilds a workflow from those tables.
Stored analytics are taken as-is because the escalation counter is
cumulative and cannot be recomputed from the cases.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock, utc_now
from app.core.logging import get_logger
from app.models.analytics import ANALYTICS_ROW_ID, DiscrepancyAnalyticsRecord
from app.models.deduction import AgentDeductionRecord
from app.models.discrepancy import DiscrepancyCase
from app.models.verification import CustomerVerificationRecord
from app.services.discrepancy.entities import (
    AgentDeduction,
    Analytics,
    CustomerVerification,
    DeductionStatus,
    Discrepancy,
    DiscrepancyStatus,
    VerificationStatus,
)
from app.services.discrepancy.policy import DeductionPolicy
from app.services.discrepancy.workflow import DiscrepancyWorkflow, WorkflowState

logger = get_logger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands datetimes back naive; they were stored as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _delete_missing(db: Session, model, keep_ids: list[str]) -> None:
    removed = (
        db.query(model)
        .filter(model.id.notin_(keep_ids))
        .delete(synchronize_session="fetch")
    )
    if removed:
        logger.info("Dropped %d stale %s rows", removed, model.__tablename__)


def save_state(db: Session, workflow: DiscrepancyWorkflow) -> dict[str, int]:
    """Replace the stored snapshot with the workflow's current state and commit.

    Rows whose ids are no longer held by the workflow, e.g. after a reset,
    are deleted in the same transaction.

    Returns:
        Row counts per entity type, for logging / API responses.
    """
    state = workflow.export_state()

    _delete_missing(db, DiscrepancyCase, [c.id for c in state.discrepancies])
    _delete_missing(
        db, CustomerVerificationRecord, [v.id for v in state.verifications]
    )
    _delete_missing(db, AgentDeductionRecord, [d.id for d in state.deductions])

    for case in state.discrepancies:
        db.merge(
            DiscrepancyCase(
                id=case.id,
                order_id=case.order_id,
                driver_id=case.driver_id,
                amount=case.amount,
                detected_at=case.detected_at,
                status=case.status.value,
                customer_verification_sent=case.customer_verification_sent,
                dispute_flagged=case.dispute_flagged,
                resolution=case.resolution,
                resolution_notes=case.resolution_notes,
                resolved_at=case.resolved_at,
                escalation_reason=case.escalation_reason,
                escalated_at=case.escalated_at,
            )
        )

    for v in state.verifications:
        db.merge(
            CustomerVerificationRecord(
                id=v.id,
                order_id=v.order_id,
                sent_at=v.sent_at,
                status=v.status.value,
                customer_response=v.customer_response,
                responded_at=v.responded_at,
            )
        )

    for d in state.deductions:
        db.merge(
            AgentDeductionRecord(
                id=d.id,
                driver_id=d.driver_id,
                order_id=d.order_id,
                amount=d.amount,
                reason=d.reason,
                auto_processed=d.auto_processed,
                processed_at=d.processed_at,
                status=d.status.value,
                reversal_reason=d.reversal_reason,
                reversed_at=d.reversed_at,
            )
        )

    a = state.analytics
    db.merge(
        DiscrepancyAnalyticsRecord(
            id=ANALYTICS_ROW_ID,
            total_discrepancies=a.total_discrepancies,
            pending_verifications=a.pending_verifications,
            escalated_cases=a.escalated_cases,
            total_amount=a.total_amount,
            resolved=a.resolved,
        )
    )
    db.commit()

    counts = {
        "discrepancies": len(state.discrepancies),
        "verifications": len(state.verifications),
        "deductions": len(state.deductions),
    }
    logger.info("Workflow snapshot saved: %s", counts)
    return counts


def load_workflow(
    db: Session,
    clock: Clock = utc_now,
    policy: Optional[DeductionPolicy] = None,
) -> DiscrepancyWorkflow:
    """Rebuild a workflow from the snapshot tables (empty if nothing saved)."""
    cases = [
        Discrepancy(
            id=row.id,
            order_id=row.order_id,
            driver_id=row.driver_id,
            amount=Decimal(str(row.amount)),
            detected_at=_aware(row.detected_at),
            status=DiscrepancyStatus(row.status),
            customer_verification_sent=bool(row.customer_verification_sent),
            dispute_flagged=bool(row.dispute_flagged),
            resolution=row.resolution,
            resolution_notes=row.resolution_notes,
            resolved_at=_aware(row.resolved_at),
            escalation_reason=row.escalation_reason,
            escalated_at=_aware(row.escalated_at),
        )
        for row in db.query(DiscrepancyCase).order_by(DiscrepancyCase.id).all()
    ]

    verifications = [
        CustomerVerification(
            id=row.id,
            order_id=row.order_id,
            sent_at=_aware(row.sent_at),
            status=VerificationStatus(row.status),
            customer_response=row.customer_response,
            responded_at=_aware(row.responded_at),
        )
        for row in db.query(CustomerVerificationRecord)
        .order_by(CustomerVerificationRecord.id)
        .all()
    ]

    deductions = [
        AgentDeduction(
            id=row.id,
            driver_id=row.driver_id,
            order_id=row.order_id,
            amount=Decimal(str(row.amount)),
            reason=row.reason,
            auto_processed=bool(row.auto_processed),
            processed_at=_aware(row.processed_at),
            status=DeductionStatus(row.status),
            reversal_reason=row.reversal_reason,
            reversed_at=_aware(row.reversed_at),
        )
        for row in db.query(AgentDeductionRecord)
        .order_by(AgentDeductionRecord.id)
        .all()
    ]

    analytics = Analytics()
    row = db.get(DiscrepancyAnalyticsRecord, ANALYTICS_ROW_ID)
    if row is not None:
        analytics = Analytics(
            total_discrepancies=row.total_discrepancies,
            pending_verifications=row.pending_verifications,
            escalated_cases=row.escalated_cases,
            total_amount=Decimal(str(row.total_amount)),
            resolved=row.resolved,
        )

    logger.info(
        "Workflow snapshot loaded: discrepancies=%d verifications=%d deductions=%d",
        len(cases),
        len(verifications),
        len(deductions),
    )
    return DiscrepancyWorkflow.from_state(
        WorkflowState(cases, verifications, deductions, analytics),
        clock=clock,
        policy=policy,
    )
