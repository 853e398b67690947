"""Discrepancy workflow endpoints.

Thin HTTP wrappers around :class:`DiscrepancyWorkflow`.  Each route runs one
workflow command, then hands the result to the notifier.  Workflow errors
map to HTTP statuses:

    ValidationError   -> 422
    NotFoundError     -> 404
    InvalidStateError -> 409
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.dependencies import get_notifier, get_workflow
from app.core.database import get_db
from app.core.exceptions import (
    DiscrepancyWorkflowError,
    InvalidStateError,
    NotFoundError,
)
from app.core.logging import get_logger
from app.schemas.discrepancy import (
    AnalyticsResponse,
    BulkEscalateRequest,
    BulkOperationResponse,
    BulkResolveRequest,
    CollectionSettlementRequest,
    DeductionCreate,
    DeductionResponse,
    DeductionReverseRequest,
    DiscrepancyCreate,
    DiscrepancyResponse,
    DriverDeductionSummaryResponse,
    EscalateRequest,
    ReportDiscrepancyResponse,
    ResolveRequest,
    SettlementOutcomeResponse,
    SnapshotResponse,
    VerificationCreate,
    VerificationOutcomeResponse,
    VerificationResponse,
    VerificationResponseRequest,
)
from app.services.discrepancy import notifications
from app.services.discrepancy.notifications import Notifier
from app.services.discrepancy.persistence import save_state
from app.services.discrepancy.workflow import DiscrepancyWorkflow

logger = get_logger(__name__)

router = APIRouter()


def _to_http(exc: DiscrepancyWorkflowError) -> HTTPException:
    """Translate a workflow error into the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


# ── Discrepancy cases ────────────────────────────────────────────────


@router.post("/discrepancies", response_model=ReportDiscrepancyResponse)
def report_discrepancy(
    body: DiscrepancyCreate,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> ReportDiscrepancyResponse:
    """Open a discrepancy case, optionally sending the customer a verification."""
    try:
        outcome = workflow.report_discrepancy(
            body.order_id,
            body.amount,
            send_verification=body.send_verification,
            driver_id=body.driver_id,
        )
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)

    sent = [notifications.discrepancy_detected(outcome.discrepancy)]
    if outcome.verification is not None:
        sent.append(notifications.verification_sent(outcome.verification))
    notifier.notify(sent)
    return ReportDiscrepancyResponse.model_validate(outcome)


@router.get("/discrepancies", response_model=List[DiscrepancyResponse])
def list_discrepancies(
    status: Optional[str] = Query(None, description="Filter by case status"),
    order_id: Optional[str] = Query(None, description="Filter by order id"),
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
) -> list[DiscrepancyResponse]:
    """List discrepancy cases in detection order."""
    try:
        cases = workflow.list_discrepancies(status=status, order_id=order_id)
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    return [DiscrepancyResponse.model_validate(c) for c in cases]


@router.get("/discrepancies/{discrepancy_id}", response_model=DiscrepancyResponse)
def get_discrepancy(
    discrepancy_id: str,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
) -> DiscrepancyResponse:
    try:
        case = workflow.get_discrepancy(discrepancy_id)
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    return DiscrepancyResponse.model_validate(case)


@router.post(
    "/discrepancies/{discrepancy_id}/resolve", response_model=DiscrepancyResponse
)
def resolve_discrepancy(
    discrepancy_id: str,
    body: ResolveRequest,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> DiscrepancyResponse:
    try:
        case = workflow.resolve_case(discrepancy_id, body.resolution, body.notes)
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    notifier.notify([notifications.discrepancy_status_changed(case)])
    return DiscrepancyResponse.model_validate(case)


@router.post(
    "/discrepancies/{discrepancy_id}/escalate", response_model=DiscrepancyResponse
)
def escalate_discrepancy(
    discrepancy_id: str,
    body: EscalateRequest,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> DiscrepancyResponse:
    try:
        case = workflow.escalate_case(discrepancy_id, body.reason)
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    notifier.notify([notifications.discrepancy_status_changed(case)])
    return DiscrepancyResponse.model_validate(case)


@router.post("/discrepancies/bulk-resolve", response_model=BulkOperationResponse)
def bulk_resolve(
    body: BulkResolveRequest,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> BulkOperationResponse:
    """Resolve many cases; unknown or already-resolved ids are skipped."""
    changed = workflow.bulk_resolve(body.discrepancy_ids, body.resolution, body.notes)
    notifier.notify(notifications.bulk_resolved(changed))
    return BulkOperationResponse(changed=changed)


@router.post("/discrepancies/bulk-escalate", response_model=BulkOperationResponse)
def bulk_escalate(
    body: BulkEscalateRequest,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> BulkOperationResponse:
    """Escalate many cases; unknown, escalated or resolved ids are skipped."""
    changed = workflow.bulk_escalate(body.discrepancy_ids, body.reason)
    notifier.notify(notifications.bulk_escalated(changed))
    return BulkOperationResponse(changed=changed)


@router.post("/settlements", response_model=SettlementOutcomeResponse)
def settle_collection(
    body: CollectionSettlementRequest,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> SettlementOutcomeResponse:
    """Reconcile the cash collected for one COD delivery."""
    try:
        outcome = workflow.settle_collection(
            body.order_id,
            body.driver_id,
            body.expected_amount,
            body.collected_amount,
        )
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)

    sent = []
    if outcome.discrepancy is not None:
        sent.append(notifications.discrepancy_detected(outcome.discrepancy))
    if outcome.verification is not None:
        sent.append(notifications.verification_sent(outcome.verification))
    if outcome.deduction is not None:
        sent.append(notifications.deduction_processed(outcome.deduction))
    if outcome.escalated:
        sent.extend(notifications.bulk_escalated(1))
    notifier.notify(sent)
    return SettlementOutcomeResponse.model_validate(outcome)


# ── Customer verifications ───────────────────────────────────────────


@router.post("/verifications", response_model=VerificationResponse)
def send_verification(
    body: VerificationCreate,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> VerificationResponse:
    try:
        verification = workflow.send_verification(body.order_id)
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    notifier.notify([notifications.verification_sent(verification)])
    return VerificationResponse.model_validate(verification)


@router.get("/verifications", response_model=List[VerificationResponse])
def list_verifications(
    order_id: Optional[str] = Query(None, description="Filter by order id"),
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
) -> list[VerificationResponse]:
    return [
        VerificationResponse.model_validate(v)
        for v in workflow.list_verifications(order_id)
    ]


@router.post(
    "/verifications/{verification_id}/response",
    response_model=VerificationOutcomeResponse,
)
def record_verification_response(
    verification_id: str,
    body: VerificationResponseRequest,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> VerificationOutcomeResponse:
    """Record the customer's answer and update the linked case."""
    try:
        outcome = workflow.apply_verification_response(
            verification_id, body.status, body.customer_response
        )
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    notifier.notify([notifications.verification_responded(outcome.verification)])
    return VerificationOutcomeResponse.model_validate(outcome)


# ── Agent deductions ─────────────────────────────────────────────────


@router.post("/deductions", response_model=DeductionResponse)
def deduct_from_agent(
    body: DeductionCreate,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> DeductionResponse:
    try:
        deduction = workflow.deduct_from_agent(
            body.driver_id, body.amount, order_id=body.order_id, reason=body.reason
        )
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    notifier.notify([notifications.deduction_processed(deduction)])
    return DeductionResponse.model_validate(deduction)


@router.get("/deductions", response_model=List[DeductionResponse])
def list_deductions(
    driver_id: Optional[str] = Query(None, description="Filter by driver id"),
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
) -> list[DeductionResponse]:
    return [
        DeductionResponse.model_validate(d) for d in workflow.list_deductions(driver_id)
    ]


@router.post("/deductions/{deduction_id}/reverse", response_model=DeductionResponse)
def reverse_deduction(
    deduction_id: str,
    body: DeductionReverseRequest,
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    notifier: Notifier = Depends(get_notifier),
) -> DeductionResponse:
    try:
        deduction = workflow.reverse_agent_deduction(deduction_id, body.reason)
    except DiscrepancyWorkflowError as exc:
        raise _to_http(exc)
    notifier.notify([notifications.deduction_reversed(deduction)])
    return DeductionResponse.model_validate(deduction)


@router.get(
    "/drivers/{driver_id}/deductions",
    response_model=DriverDeductionSummaryResponse,
)
def driver_daily_deductions(
    driver_id: str,
    day: Optional[date] = Query(None, description="Day (YYYY-MM-DD); default today"),
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
) -> DriverDeductionSummaryResponse:
    """Processed discrepancy deductions for a driver on one day."""
    summary = workflow.driver_daily_deductions(driver_id, day)
    return DriverDeductionSummaryResponse.model_validate(summary)


# ── Analytics & state ────────────────────────────────────────────────


@router.get("/analytics", response_model=AnalyticsResponse)
def analytics(
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
) -> AnalyticsResponse:
    return AnalyticsResponse.model_validate(workflow.analytics())


@router.post("/snapshot", response_model=SnapshotResponse)
def save_snapshot(
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
    db: Session = Depends(get_db),
) -> SnapshotResponse:
    """Persist the current workflow state to the database."""
    try:
        counts = save_state(db, workflow)
    except Exception as exc:
        logger.exception("Workflow snapshot failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return SnapshotResponse(**counts)


@router.post("/reset", response_model=AnalyticsResponse)
def reset(
    workflow: DiscrepancyWorkflow = Depends(get_workflow),
) -> AnalyticsResponse:
    """Clear all cases, verifications, deductions and counters."""
    workflow.reset()
    return AnalyticsResponse.model_validate(workflow.analytics())
