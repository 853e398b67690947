"""Pydantic schemas for the discrepancy workflow API."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.discrepancy.entities import (
    DeductionStatus,
    DiscrepancyStatus,
    VerificationStatus,
)


# ── Requests ─────────────────────────────────────────────────────────


class DiscrepancyCreate(BaseModel):
    """Request body to report a discrepancy for an order."""

    order_id: str = Field(..., max_length=100)
    amount: Decimal = Field(
        ...,
        description="Collected minus expected; negative means a shortfall",
    )
    send_verification: bool = Field(
        False,
        description="Send the customer an SMS asking them to confirm the amount",
    )
    driver_id: Optional[str] = Field(None, max_length=100)


class CollectionSettlementRequest(BaseModel):
    """Cash collected by an agent for one COD order."""

    order_id: str = Field(..., max_length=100)
    driver_id: str = Field(..., max_length=100)
    expected_amount: Decimal
    collected_amount: Decimal


class ResolveRequest(BaseModel):
    resolution: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class EscalateRequest(BaseModel):
    reason: Optional[str] = None


class BulkResolveRequest(BaseModel):
    discrepancy_ids: list[str] = Field(default_factory=list)
    resolution: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class BulkEscalateRequest(BaseModel):
    discrepancy_ids: list[str] = Field(default_factory=list)
    reason: Optional[str] = None


class VerificationCreate(BaseModel):
    order_id: str = Field(..., max_length=100)


class VerificationResponseRequest(BaseModel):
    status: str = Field(
        ...,
        description="confirmed | disputed | expired | resolved",
    )
    customer_response: Optional[str] = None


class DeductionCreate(BaseModel):
    driver_id: str = Field(..., max_length=100)
    amount: Decimal = Field(..., description="Must be greater than zero")
    order_id: Optional[str] = Field(None, max_length=100)
    reason: str = Field("cod_discrepancy", max_length=50)


class DeductionReverseRequest(BaseModel):
    reason: Optional[str] = None


# ── Responses ────────────────────────────────────────────────────────


class DiscrepancyResponse(BaseModel):
    """Full discrepancy case returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    driver_id: Optional[str] = None
    amount: Decimal
    detected_at: datetime
    status: DiscrepancyStatus
    customer_verification_sent: bool = False
    dispute_flagged: bool = False
    resolution: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    escalated_at: Optional[datetime] = None


class VerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    sent_at: datetime
    status: VerificationStatus
    customer_response: Optional[str] = None
    responded_at: Optional[datetime] = None


class DeductionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    driver_id: str
    order_id: Optional[str] = None
    amount: Decimal
    reason: str
    auto_processed: bool = False
    processed_at: datetime
    status: DeductionStatus
    reversal_reason: Optional[str] = None
    reversed_at: Optional[datetime] = None


class ReportDiscrepancyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    discrepancy: DiscrepancyResponse
    verification: Optional[VerificationResponse] = None


class VerificationOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    verification: VerificationResponse
    discrepancy: Optional[DiscrepancyResponse] = None


class SettlementOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    amount: Decimal
    discrepancy: Optional[DiscrepancyResponse] = None
    verification: Optional[VerificationResponse] = None
    deduction: Optional[DeductionResponse] = None
    escalated: bool = False


class BulkOperationResponse(BaseModel):
    changed: int = Field(..., description="Number of cases that actually changed")


class AnalyticsResponse(BaseModel):
    """Running counters for dashboards."""

    model_config = ConfigDict(from_attributes=True)

    total_discrepancies: int
    pending_verifications: int
    escalated_cases: int
    total_amount: Decimal
    resolved: int


class DriverDeductionSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    driver_id: str
    day: date
    total: Decimal
    orders_affected: int
    average_deduction: Decimal
    breakdown: list[DeductionResponse] = Field(default_factory=list)


class SnapshotResponse(BaseModel):
    discrepancies: int
    verifications: int
    deductions: int
