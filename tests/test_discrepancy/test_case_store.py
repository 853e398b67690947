"""Unit tests for the discrepancy case store.

The store is exercised directly, so every test checks the analytics delta
it hands back rather than a running total.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.services.discrepancy.case_store import CaseStore
from app.services.discrepancy.entities import AnalyticsDelta, DiscrepancyStatus


@pytest.fixture
def store(clock) -> CaseStore:
    return CaseStore(clock)


# ── record ───────────────────────────────────────────────────────────


class TestRecord:
    def test_new_case_is_detected(self, store, clock) -> None:
        change = store.record("ORD-1", -75.5)

        case = change.discrepancy
        assert case.status is DiscrepancyStatus.DETECTED
        assert case.amount == Decimal("-75.5")
        assert case.detected_at == clock.now
        assert case.resolved_at is None
        assert change.delta == AnalyticsDelta(
            total_discrepancies=1, total_amount=Decimal("-75.5")
        )

    def test_verification_sent_starts_pending(self, store) -> None:
        change = store.record("ORD-1", 150.0, customer_verification_sent=True)

        assert change.discrepancy.status is DiscrepancyStatus.PENDING_VERIFICATION
        assert change.discrepancy.customer_verification_sent is True
        assert change.delta.pending_verifications == 1

    def test_ids_are_distinct_and_increasing(self, store) -> None:
        first = store.record("ORD-1", 10).discrepancy
        second = store.record("ORD-2", 20).discrepancy

        assert first.id != second.id
        assert first.id < second.id

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), "abc", None, True])
    def test_rejects_bad_amount(self, store, amount) -> None:
        with pytest.raises(ValidationError):
            store.record("ORD-1", amount)
        assert len(store) == 0

    @pytest.mark.parametrize("amount", [Decimal("0.005"), "10.001", 0.125])
    def test_rejects_sub_cent_amounts(self, store, amount) -> None:
        with pytest.raises(ValidationError, match="two decimal places"):
            store.record("ORD-1", amount)
        assert len(store) == 0

    def test_accepts_whole_cents(self, store) -> None:
        case = store.record("ORD-1", "19.90").discrepancy

        assert case.amount == Decimal("19.9")

    @pytest.mark.parametrize("order_id", ["", "   ", None])
    def test_rejects_empty_order_id(self, store, order_id) -> None:
        with pytest.raises(ValidationError):
            store.record(order_id, 10)


# ── update_status ────────────────────────────────────────────────────


class TestUpdateStatus:
    def test_resolve_pending_case(self, store, clock) -> None:
        case = store.record("ORD-1", 10, customer_verification_sent=True).discrepancy
        clock.advance(hours=1)

        change = store.update_status(case.id, "resolved", "refunded", "paid back")

        assert case.status is DiscrepancyStatus.RESOLVED
        assert case.resolution == "refunded"
        assert case.resolution_notes == "paid back"
        assert case.resolved_at == clock.now
        assert change.delta == AnalyticsDelta(pending_verifications=-1, resolved=1)

    def test_resolve_detected_case_counts_resolution(self, store) -> None:
        case = store.record("ORD-1", 10).discrepancy

        change = store.update_status(case.id, DiscrepancyStatus.RESOLVED)

        assert change.delta == AnalyticsDelta(resolved=1)

    def test_escalate_then_resolve_keeps_escalated_at(self, store, clock) -> None:
        case = store.record("ORD-1", 10).discrepancy
        store.update_status(case.id, "escalated", notes="fraud suspected")
        escalated_at = case.escalated_at
        clock.advance(days=1)

        store.update_status(case.id, "resolved")

        assert case.status is DiscrepancyStatus.RESOLVED
        assert case.escalated_at == escalated_at
        assert case.escalation_reason == "fraud suspected"
        assert case.resolved_at == clock.now

    def test_escalating_pending_case_releases_pending_counter(self, store) -> None:
        case = store.record("ORD-1", 10, customer_verification_sent=True).discrepancy

        change = store.update_status(case.id, "escalated")

        assert change.delta == AnalyticsDelta(
            pending_verifications=-1, escalated_cases=1
        )
        assert case.resolved_at is None

    def test_same_status_is_noop(self, store) -> None:
        case = store.record("ORD-1", 10).discrepancy
        store.update_status(case.id, "escalated")

        change = store.update_status(case.id, "escalated")

        assert change.changed is False
        assert change.delta.is_empty

    def test_resolved_is_terminal(self, store) -> None:
        case = store.record("ORD-1", 10).discrepancy
        store.update_status(case.id, "resolved")

        with pytest.raises(InvalidStateError):
            store.update_status(case.id, "escalated")
        assert case.status is DiscrepancyStatus.RESOLVED

    def test_unknown_id(self, store) -> None:
        with pytest.raises(NotFoundError):
            store.update_status("DSC-999999", "resolved")

    @pytest.mark.parametrize("target", ["detected", "pending_verification", "closed"])
    def test_rejects_non_closing_targets(self, store, target) -> None:
        case = store.record("ORD-1", 10).discrepancy
        with pytest.raises(ValidationError):
            store.update_status(case.id, target)


# ── bulk operations ──────────────────────────────────────────────────


class TestBulk:
    def test_bulk_resolve_skips_unknown_and_resolved(self, store) -> None:
        a = store.record("ORD-1", 10, customer_verification_sent=True).discrepancy
        b = store.record("ORD-2", 20).discrepancy
        c = store.record("ORD-3", 30).discrepancy
        store.update_status(c.id, "resolved")

        result = store.bulk_resolve([a.id, b.id, c.id, "DSC-404"], "written_off")

        assert result.count == 2
        assert result.delta == AnalyticsDelta(pending_verifications=-1, resolved=2)
        assert a.resolution == "written_off"

    def test_bulk_resolve_counts_duplicates_once(self, store) -> None:
        a = store.record("ORD-1", 10, customer_verification_sent=True).discrepancy

        result = store.bulk_resolve([a.id, a.id, a.id])

        assert result.count == 1
        assert result.delta.pending_verifications == -1

    def test_bulk_escalate_skips_resolved(self, store) -> None:
        a = store.record("ORD-1", 10).discrepancy
        b = store.record("ORD-2", 20).discrepancy
        store.update_status(b.id, "resolved")

        result = store.bulk_escalate([a.id, b.id], "fraud suspected")

        assert result.count == 1
        assert b.status is DiscrepancyStatus.RESOLVED
        assert a.escalation_reason == "fraud suspected"


# ── queries ──────────────────────────────────────────────────────────


class TestQueries:
    def test_find_pending_prefers_latest(self, store) -> None:
        store.record("ORD-1", 10, customer_verification_sent=True)
        latest = store.record("ORD-1", 15, customer_verification_sent=True).discrepancy
        store.record("ORD-2", 20, customer_verification_sent=True)

        assert store.find_pending_for_order("ORD-1") is latest
        assert store.find_pending_for_order("ORD-9") is None

    def test_list_filters(self, store) -> None:
        store.record("ORD-1", 10)
        store.record("ORD-2", 20, customer_verification_sent=True)

        assert len(store.list_cases()) == 2
        assert [c.order_id for c in store.list_cases("pending_verification")] == [
            "ORD-2"
        ]
        assert [c.order_id for c in store.list_cases(order_id="ORD-1")] == ["ORD-1"]

    def test_list_rejects_unknown_status(self, store) -> None:
        with pytest.raises(ValidationError):
            store.list_cases("archived")
