"""SQLAlchemy models for discrepancy workflow snapshots."""

from app.models.discrepancy import DiscrepancyCase
from app.models.verification import CustomerVerificationRecord
from app.models.deduction import AgentDeductionRecord
from app.models.analytics import DiscrepancyAnalyticsRecord

__all__ = [
    "DiscrepancyCase",
    "CustomerVerificationRecord",
    "AgentDeductionRecord",
    "DiscrepancyAnalyticsRecord",
]
