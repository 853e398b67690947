"""API integration tests for the discrepancy workflow endpoints."""

from __future__ import annotations

from app.models.discrepancy import DiscrepancyCase

BASE = "/api/v1/discrepancy-workflow"


def _report(client, order_id="ORD-1", amount=150.0, send_verification=True):
    response = client.post(
        f"{BASE}/discrepancies",
        json={
            "order_id": order_id,
            "amount": amount,
            "send_verification": send_verification,
        },
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_analytics_empty(client):
    """GET /analytics returns zeroes when nothing happened yet."""
    response = client.get(f"{BASE}/analytics")
    assert response.status_code == 200
    data = response.json()
    assert data["total_discrepancies"] == 0
    assert data["pending_verifications"] == 0
    assert float(data["total_amount"]) == 0


def test_report_and_confirm_flow(client):
    """Report with verification -> customer confirms -> case resolved."""
    created = _report(client)
    assert created["discrepancy"]["status"] == "pending_verification"
    verification_id = created["verification"]["id"]

    analytics = client.get(f"{BASE}/analytics").json()
    assert analytics["total_discrepancies"] == 1
    assert analytics["pending_verifications"] == 1
    assert float(analytics["total_amount"]) == 150.0

    response = client.post(
        f"{BASE}/verifications/{verification_id}/response",
        json={"status": "confirmed", "customer_response": "yes that's right"},
    )
    assert response.status_code == 200, response.text
    outcome = response.json()
    assert outcome["verification"]["status"] == "confirmed"
    assert outcome["discrepancy"]["status"] == "resolved"

    analytics = client.get(f"{BASE}/analytics").json()
    assert analytics["pending_verifications"] == 0
    assert analytics["resolved"] == 1


def test_response_twice_conflicts(client):
    created = _report(client)
    verification_id = created["verification"]["id"]
    url = f"{BASE}/verifications/{verification_id}/response"

    assert client.post(url, json={"status": "expired"}).status_code == 200
    response = client.post(url, json={"status": "confirmed"})
    assert response.status_code == 409


def test_invalid_verification_status(client):
    created = _report(client)
    verification_id = created["verification"]["id"]

    response = client.post(
        f"{BASE}/verifications/{verification_id}/response",
        json={"status": "sent"},
    )
    assert response.status_code == 422


def test_get_unknown_discrepancy(client):
    response = client.get(f"{BASE}/discrepancies/DSC-404404")
    assert response.status_code == 404
    assert "not found" in response.json()["detail"].lower()


def test_list_discrepancies_with_filter(client):
    _report(client, "ORD-1", 10, send_verification=False)
    _report(client, "ORD-2", 20, send_verification=True)

    response = client.get(f"{BASE}/discrepancies", params={"status": "detected"})
    assert response.status_code == 200
    assert [d["order_id"] for d in response.json()] == ["ORD-1"]

    bad = client.get(f"{BASE}/discrepancies", params={"status": "archived"})
    assert bad.status_code == 422


def test_resolve_and_escalate(client):
    case_id = _report(client, send_verification=False)["discrepancy"]["id"]

    escalated = client.post(
        f"{BASE}/discrepancies/{case_id}/escalate", json={"reason": "fraud suspected"}
    )
    assert escalated.status_code == 200
    assert escalated.json()["escalation_reason"] == "fraud suspected"

    resolved = client.post(
        f"{BASE}/discrepancies/{case_id}/resolve",
        json={"resolution": "written_off", "notes": "approved by manager"},
    )
    assert resolved.status_code == 200
    body = resolved.json()
    assert body["status"] == "resolved"
    assert body["escalated_at"] is not None

    again = client.post(f"{BASE}/discrepancies/{case_id}/escalate", json={})
    assert again.status_code == 409


def test_bulk_endpoints(client):
    first = _report(client, "ORD-1", 10, send_verification=False)["discrepancy"]["id"]
    second = _report(client, "ORD-2", 20, send_verification=True)["discrepancy"]["id"]

    response = client.post(
        f"{BASE}/discrepancies/bulk-escalate",
        json={"discrepancy_ids": [first, first, "DSC-404"], "reason": "audit"},
    )
    assert response.json() == {"changed": 1}

    response = client.post(
        f"{BASE}/discrepancies/bulk-resolve",
        json={"discrepancy_ids": [first, second, second], "resolution": "cleared"},
    )
    assert response.json() == {"changed": 2}

    analytics = client.get(f"{BASE}/analytics").json()
    assert analytics["escalated_cases"] == 1
    assert analytics["resolved"] == 2
    assert analytics["pending_verifications"] == 0


def test_deduction_reverse_flow(client):
    response = client.post(
        f"{BASE}/deductions", json={"driver_id": "driver-7", "amount": 40.0}
    )
    assert response.status_code == 200
    deduction_id = response.json()["id"]

    url = f"{BASE}/deductions/{deduction_id}/reverse"
    response = client.post(url, json={"reason": "customer proved overcharge"})
    assert response.status_code == 200
    assert response.json()["status"] == "reversed"

    assert client.post(url, json={"reason": "again"}).status_code == 409
    assert client.get(f"{BASE}/analytics").json()["total_discrepancies"] == 0


def test_deduction_requires_positive_amount(client):
    response = client.post(
        f"{BASE}/deductions", json={"driver_id": "driver-7", "amount": 0}
    )
    assert response.status_code == 422


def test_settlement_and_driver_summary(client):
    response = client.post(
        f"{BASE}/settlements",
        json={
            "order_id": "ORD-1",
            "driver_id": "driver-7",
            "expected_amount": 650,
            "collected_amount": 400,
        },
    )
    assert response.status_code == 200, response.text
    outcome = response.json()
    assert outcome["escalated"] is True
    assert outcome["discrepancy"]["status"] == "escalated"
    assert float(outcome["deduction"]["amount"]) == 250.0

    summary = client.get(
        f"{BASE}/drivers/driver-7/deductions", params={"day": "2024-03-15"}
    ).json()
    assert float(summary["total"]) == 250.0
    assert summary["orders_affected"] == 1
    assert len(summary["breakdown"]) == 1


def test_send_verification_endpoint(client):
    _report(client, "ORD-1", 10, send_verification=False)

    response = client.post(f"{BASE}/verifications", json={"order_id": "ORD-1"})
    assert response.status_code == 200
    assert response.json()["status"] == "sent"

    listed = client.get(f"{BASE}/verifications", params={"order_id": "ORD-1"})
    assert len(listed.json()) == 1
    assert client.get(f"{BASE}/analytics").json()["pending_verifications"] == 1


def test_snapshot_and_reset(client):
    _report(client)

    response = client.post(f"{BASE}/snapshot")
    assert response.status_code == 200
    assert response.json() == {"discrepancies": 1, "verifications": 1, "deductions": 0}

    response = client.post(f"{BASE}/reset")
    assert response.status_code == 200
    assert response.json()["total_discrepancies"] == 0
    assert client.get(f"{BASE}/discrepancies").json() == []


def test_snapshot_after_reset_replaces_stored_rows(client, db_session):
    _report(client)
    client.post(f"{BASE}/snapshot")
    client.post(f"{BASE}/reset")

    response = client.post(f"{BASE}/snapshot")

    assert response.status_code == 200
    assert response.json() == {"discrepancies": 0, "verifications": 0, "deductions": 0}
    assert db_session.query(DiscrepancyCase).count() == 0


def test_sub_cent_amount_is_rejected(client):
    response = client.post(
        f"{BASE}/discrepancies",
        json={"order_id": "ORD-1", "amount": "0.005"},
    )
    assert response.status_code == 422
    assert "two decimal places" in response.json()["detail"]
