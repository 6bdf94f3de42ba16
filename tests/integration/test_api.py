"""Integration tests for API endpoints"""

from datetime import datetime
from unittest.mock import patch
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from coop_settlement.domain.exceptions import PersistenceFailureError


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "settlement_total" in response.text
    assert "ledger_bookkeeping_failures_total" in response.text


def test_request_id_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    minted = client.get("/health")
    assert minted.headers["X-Request-ID"]


def test_process_delivery_success(client: TestClient, make_loan, make_delivery):
    """Test POST /v1/process-delivery with a loan deduction"""
    make_loan("500", datetime(2025, 1, 1))
    delivery_id = make_delivery("200", "10")

    response = client.post(
        "/v1/process-delivery",
        json={"deliveryId": delivery_id, "paymentMethod": "cash", "referenceNumber": "RCPT-7"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["deductionApplied"] == 500
    assert data["netPaid"] == 1500
    assert "Deducted 500" in data["message"]

    payout = data["payout"]
    assert payout["delivery_id"] == delivery_id
    assert payout["gross_amount"] == 2000
    assert payout["loan_deduction"] == 500
    assert payout["net_paid"] == 1500
    assert payout["method"] == "cash"
    assert payout["reference_number"] == "RCPT-7"
    assert payout["created_by"] == "officer-1"


def test_process_delivery_defaults_to_bank(client: TestClient, make_delivery):
    delivery_id = make_delivery("10", "10")

    response = client.post("/v1/process-delivery", json={"deliveryId": delivery_id})

    assert response.status_code == 200
    assert response.json()["payout"]["method"] == "bank"
    assert response.json()["deductionApplied"] == 0


def test_process_delivery_twice_conflicts(client: TestClient, make_delivery):
    delivery_id = make_delivery("10", "10")

    first = client.post("/v1/process-delivery", json={"deliveryId": delivery_id})
    second = client.post("/v1/process-delivery", json={"deliveryId": delivery_id})

    assert first.status_code == 200
    assert second.status_code == 409
    body = second.json()
    assert "already been processed" in body["error"]
    assert body["details"] == f"payout_id={first.json()['payout']['id']}"
    assert body["timestamp"]


def test_process_delivery_requires_delivery_id(client: TestClient):
    response = client.post("/v1/process-delivery", json={"paymentMethod": "bank"})

    assert response.status_code == 400
    assert response.json()["error"] == "Delivery ID is required"
    assert response.json()["timestamp"]


def test_process_delivery_not_found(client: TestClient):
    response = client.post("/v1/process-delivery", json={"deliveryId": "nope"})

    assert response.status_code == 404
    assert response.json()["error"] == "Delivery nope not found"


def test_process_delivery_invalid_delivery(client: TestClient, make_delivery):
    delivery_id = make_delivery("0", "10")

    response = client.post("/v1/process-delivery", json={"deliveryId": delivery_id})

    assert response.status_code == 422
    assert "error" in response.json()


def test_process_delivery_unknown_payment_method(client: TestClient, make_delivery):
    delivery_id = make_delivery("10", "10")

    response = client.post("/v1/process-delivery", json={"deliveryId": delivery_id, "paymentMethod": "goats"})

    assert response.status_code == 400
    assert "goats" in response.json()["error"]


@patch("coop_settlement.infrastructure.database.repositories.PayoutRepository.create_payout")
def test_process_delivery_persistence_failure(mock_create, client: TestClient, make_delivery):
    mock_create.side_effect = PersistenceFailureError("Failed to create payout: connection reset")
    delivery_id = make_delivery("10", "10")

    response = client.post("/v1/process-delivery", json={"deliveryId": delivery_id})

    assert response.status_code == 503
    assert response.json()["error"].startswith("Failed to create payout")


@patch("coop_settlement.infrastructure.database.repositories.DeliveryRepository.get_delivery")
def test_process_delivery_store_unavailable(mock_get, client: TestClient):
    mock_get.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))

    response = client.post("/v1/process-delivery", json={"deliveryId": "any"})

    assert response.status_code == 503
    assert response.json()["error"].startswith("Failed to fetch delivery")


def test_process_delivery_documents_error_envelope(client: TestClient):
    schema = client.get("/openapi.json").json()
    responses = schema["paths"]["/v1/process-delivery"]["post"]["responses"]

    for status in ("400", "404", "409", "422", "503"):
        ref = responses[status]["content"]["application/json"]["schema"]["$ref"]
        assert ref == "#/components/schemas/ErrorResponse"
    assert set(schema["components"]["schemas"]["ErrorResponse"]["required"]) == {"error", "timestamp"}


def test_list_payouts_with_names(client: TestClient, make_loan, make_delivery):
    make_loan("50", datetime(2025, 1, 1))
    delivery_id = make_delivery("10", "10")
    client.post("/v1/process-delivery", json={"deliveryId": delivery_id})

    response = client.get("/v1/payouts")

    assert response.status_code == 200
    payouts = response.json()["payouts"]
    assert len(payouts) == 1
    assert payouts[0]["delivery_id"] == delivery_id
    assert payouts[0]["farmer_name"] == "Grace Banda"
    assert payouts[0]["farmer_group_name"] == "Mwanza Cotton Club"
    assert payouts[0]["loan_deduction"] == 50


def test_payout_summary(client: TestClient, make_loan, make_delivery):
    make_loan("500", datetime(2025, 1, 1))
    delivery_id = make_delivery("200", "10")
    client.post("/v1/process-delivery", json={"deliveryId": delivery_id})

    response = client.get("/v1/payouts/summary")

    assert response.status_code == 200
    data = response.json()
    assert data["total_payments"] == 1
    assert data["total_net_paid"] == 1500
    assert data["total_loan_deductions"] == 500
    assert data["recovery_rate"] == 25.0


def test_payout_summary_empty(client: TestClient):
    data = client.get("/v1/payouts/summary").json()

    assert data["total_payments"] == 0
    assert data["recovery_rate"] == 0


def test_payout_detail_lists_ledger_entries(client: TestClient, make_loan, make_delivery):
    first_loan = make_loan("100", datetime(2025, 1, 1))
    second_loan = make_loan("100", datetime(2025, 2, 1))
    delivery_id = make_delivery("15", "10")
    payout_id = client.post("/v1/process-delivery", json={"deliveryId": delivery_id}).json()["payout"]["id"]

    response = client.get(f"/v1/payouts/{payout_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["payout"]["id"] == payout_id
    entries = sorted(data["ledger_entries"], key=lambda e: e["amount"])
    assert [(e["loan_id"], e["amount"], e["balance_after"]) for e in entries] == [
        (first_loan, -100, 0),
        (second_loan, -50, 50),
    ]
    assert all(e["reference_id"] == payout_id for e in entries)


def test_payout_detail_not_found(client: TestClient):
    response = client.get("/v1/payouts/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404


def test_loan_ledger_filtered_by_farmer(client: TestClient, coop, make_loan, make_delivery):
    make_loan("100", datetime(2025, 1, 1))
    delivery_id = make_delivery("20", "10")
    client.post("/v1/process-delivery", json={"deliveryId": delivery_id})

    mine = client.get(f"/v1/loan-ledger?farmer_id={coop.farmer_id}").json()["entries"]
    others = client.get("/v1/loan-ledger?farmer_id=someone-else").json()["entries"]

    assert len(mine) == 1
    assert mine[0]["farmer_name"] == "Grace Banda"
    assert mine[0]["entry_type"] == "sale_deduction"
    assert mine[0]["amount"] == -100
    assert others == []


def test_diagnostics_reports_tables(client: TestClient):
    response = client.get("/v1/diagnostics/tables")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert set(data["tableChecks"]) == {
        "deliveries",
        "payouts",
        "loans",
        "loan_ledgers",
        "farmers",
        "farmer_groups",
        "seasons",
    }
    assert all(check["exists"] for check in data["tableChecks"].values())
