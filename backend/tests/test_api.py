"""API endpoint tests."""

import csv
import io
from unittest.mock import patch

from fastapi.testclient import TestClient

from stockcount.services.errors import StockApplyError
from stockcount.services.stock_ledger import SqlStockLedger


def create_record(client, location, observations, **extra):
    payload = {"location_id": location.id, "created_by": "alice", "observations": observations}
    payload.update(extra)
    return client.post("/api/v1/reconciliations", json=payload)


class TestHealthCheck:
    """Test health check endpoints."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness(self, client: TestClient):
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"]["database"] == "healthy"
        assert data["checks"]["redis"] == "not configured"
        assert data["status"] == "ready"


class TestProducts:
    def test_get_product_by_barcode(self, client: TestClient, carton_product):
        response = client.get("/api/v1/products/barcode/5410000000017")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == carton_product.id
        assert data["units_per_carton"] == 12

    def test_unknown_barcode(self, client: TestClient):
        response = client.get("/api/v1/products/barcode/0000000000000")
        assert response.status_code == 404


class TestStock:
    def test_stock_levels_with_cartons(self, client: TestClient, test_location, carton_product, set_stock):
        set_stock(carton_product, test_location, 29)

        response = client.get(f"/api/v1/stock/{test_location.id}")

        assert response.status_code == 200
        item = response.json()["items"][0]
        assert item["quantity"] == 29
        assert (item["cartons"], item["units"]) == (2, 5)

    def test_unknown_location(self, client: TestClient):
        response = client.get("/api/v1/stock/999")
        assert response.status_code == 404


class TestReconciliations:
    """Test the reconciliation endpoints end to end."""

    def test_create_and_get(self, client: TestClient, test_location, carton_product, set_stock):
        set_stock(carton_product, test_location, 11)

        response = create_record(
            client,
            test_location,
            [{"product_id": carton_product.id, "unit_kind": "unit", "quantity": 12}],
            policy_hint="delta",
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending_confirmation"
        assert data["reference"] == f"INV-{data['id']:05d}"
        assert data["policy_hint"] == "delta"
        line = data["lines"][0]
        assert line["before_scan_total_units"] == 11
        assert (line["delta_cartons"], line["delta_units"], line["delta_total_units"]) == (1, -11, 1)

        response = client.get(f"/api/v1/reconciliations/{data['id']}")
        assert response.status_code == 200
        assert response.json()["lines"][0]["product_name"] == "Sparkling Water 50cl"

    def test_create_validation_errors(self, client: TestClient, test_location, unit_product):
        response = create_record(client, test_location, [])
        assert response.status_code == 422

        response = client.post(
            "/api/v1/reconciliations",
            json={"created_by": "alice", "observations": [{"product_id": unit_product.id, "quantity": 1}]},
        )
        assert response.status_code == 422

        response = create_record(client, test_location, [{"product_id": unit_product.id, "quantity": -1}])
        assert response.status_code == 422

    def test_create_unknown_product(self, client: TestClient, test_location):
        response = create_record(client, test_location, [{"product_id": 9999, "quantity": 1}])
        assert response.status_code == 404

    def test_update_pending_record(self, client: TestClient, test_location, carton_product):
        record_id = create_record(
            client, test_location, [{"product_id": carton_product.id, "quantity": 3}]
        ).json()["id"]

        response = client.put(
            f"/api/v1/reconciliations/{record_id}",
            json={"observations": [{"product_id": carton_product.id, "unit_kind": "carton", "quantity": 1}]},
        )

        assert response.status_code == 200
        line = response.json()["lines"][0]
        assert (line["scanned_cartons"], line["scanned_units"], line["scanned_total_units"]) == (1, 0, 12)

    def test_confirm_baseline(self, client: TestClient, test_location, carton_product, set_stock):
        set_stock(carton_product, test_location, 40)
        record_id = create_record(
            client, test_location, [{"product_id": carton_product.id, "unit_kind": "carton", "quantity": 3}]
        ).json()["id"]

        response = client.post(f"/api/v1/reconciliations/{record_id}/confirm?policy=baseline")

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert response.json()["confirmed_policy"] == "baseline"
        stock = client.get(f"/api/v1/stock/{test_location.id}").json()["items"][0]
        assert stock["quantity"] == 36

    def test_confirm_twice_conflicts(self, client: TestClient, test_location, unit_product):
        record_id = create_record(
            client, test_location, [{"product_id": unit_product.id, "quantity": 2}]
        ).json()["id"]
        assert client.post(f"/api/v1/reconciliations/{record_id}/confirm?policy=delta").status_code == 200

        response = client.post(f"/api/v1/reconciliations/{record_id}/confirm?policy=delta")
        assert response.status_code == 409

        response = client.put(
            f"/api/v1/reconciliations/{record_id}",
            json={"observations": [{"product_id": unit_product.id, "quantity": 5}]},
        )
        assert response.status_code == 409

    def test_confirm_requires_known_policy(self, client: TestClient, test_location, unit_product):
        record_id = create_record(
            client, test_location, [{"product_id": unit_product.id, "quantity": 2}]
        ).json()["id"]
        assert client.post(f"/api/v1/reconciliations/{record_id}/confirm").status_code == 422
        assert client.post(f"/api/v1/reconciliations/{record_id}/confirm?policy=average").status_code == 422

    def test_confirm_apply_failure(self, client: TestClient, test_location, unit_product):
        record_id = create_record(
            client, test_location, [{"product_id": unit_product.id, "quantity": 2}]
        ).json()["id"]

        with patch.object(SqlStockLedger, "apply", side_effect=StockApplyError(record_id, "ledger offline")):
            response = client.post(f"/api/v1/reconciliations/{record_id}/confirm?policy=delta")

        assert response.status_code == 502
        assert client.get(f"/api/v1/reconciliations/{record_id}").json()["status"] == "pending_confirmation"

    def test_not_found(self, client: TestClient):
        assert client.get("/api/v1/reconciliations/999").status_code == 404
        assert client.get("/api/v1/reconciliations/999/summary").status_code == 404
        assert client.get("/api/v1/reconciliations/999/export").status_code == 404
        assert client.post("/api/v1/reconciliations/999/confirm?policy=delta").status_code == 404

    def test_list_with_filters(self, client: TestClient, test_location, other_location, unit_product):
        create_record(client, test_location, [{"product_id": unit_product.id, "quantity": 1}])
        create_record(client, other_location, [{"product_id": unit_product.id, "quantity": 1}])

        response = client.get("/api/v1/reconciliations")
        assert response.status_code == 200
        assert response.json()["total"] == 2

        response = client.get(f"/api/v1/reconciliations?location_id={test_location.id}")
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["location_id"] == test_location.id

        response = client.get("/api/v1/reconciliations?status=confirmed")
        assert response.json()["total"] == 0

    def test_summary(self, client: TestClient, test_location, unit_product, set_stock):
        set_stock(unit_product, test_location, 5)
        record_id = create_record(
            client, test_location, [{"product_id": unit_product.id, "quantity": 2}]
        ).json()["id"]

        response = client.get(f"/api/v1/reconciliations/{record_id}/summary")

        assert response.status_code == 200
        data = response.json()
        assert data["shortage_lines"] == 1
        assert data["delta_total_units"] == -3

    def test_export_csv(self, client: TestClient, test_location, carton_product, set_stock):
        set_stock(carton_product, test_location, 29)
        record_id = create_record(
            client, test_location, [{"product_id": carton_product.id, "quantity": 30}]
        ).json()["id"]

        response = client.get(f"/api/v1/reconciliations/{record_id}/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert f"INV-{record_id:05d}.csv" in response.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(response.text)))
        header_index = rows.index(next(r for r in rows if r and r[0] == "Product ID"))
        line = rows[header_index + 1]
        assert line[1] == "Sparkling Water 50cl"
        assert line[-1] == "1"
