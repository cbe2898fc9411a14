"""API tests for batches, scanning and the cart."""
import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from scanorder import main
from scanorder.config import settings
from scanorder.schemas import UNKNOWN_DESCRIPTION, GENERIC_BRAND
from scanorder.session import OrderSession


@pytest.fixture
def uploaded(client, sample_text):
    """Upload the sample price list and return the import response."""
    response = client.post(
        "/batches",
        files={"file": ("listino.csv", sample_text.encode("utf-8"), "text/csv")},
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "X-Process-Time" in response.headers
        assert response.headers["X-Request-ID"]

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "scanner-7"})
        assert response.headers["X-Request-ID"] == "scanner-7"


class TestBatchesAPI:
    """Tests for price-list import and browsing endpoints."""

    def test_upload(self, uploaded):
        assert uploaded["imported"] == 2
        assert uploaded["batch"]["file_name"] == "listino.csv"
        assert uploaded["batch"]["product_count"] == 2

    def test_upload_spreadsheet(self, client, make_xlsx):
        payload = make_xlsx([["ACME", "CODE1", "8001234567890", "Widget", "1", "19,90"]])
        response = client.post(
            "/batches",
            files={"file": ("listino.xlsx", payload, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
        )
        assert response.status_code == 201
        assert response.json()["imported"] == 1

    def test_upload_without_products(self, client):
        response = client.post("/batches", files={"file": ("empty.csv", b"nothing here", "text/csv")})
        assert response.status_code == 422
        data = response.json()
        assert "No valid products" in data["error"]
        assert data["details"]["file_name"] == "empty.csv"

    def test_upload_binary_as_text(self, client, make_xlsx):
        payload = make_xlsx([["ACME", "CODE1"]])
        response = client.post("/batches", files={"file": ("listino.csv", payload, "text/csv")})
        assert response.status_code == 422

    def test_upload_corrupt_spreadsheet(self, client):
        response = client.post("/batches", files={"file": ("listino.xls", b"not excel", "application/vnd.ms-excel")})
        assert response.status_code == 422
        assert "Spreadsheet" in response.json()["error"]

    def test_upload_too_large(self, client, monkeypatch, sample_text):
        monkeypatch.setattr(settings, "max_upload_size_mb", 0)
        response = client.post("/batches", files={"file": ("listino.csv", sample_text.encode(), "text/csv")})
        assert response.status_code == 413

    def test_upload_missing_file(self, client):
        response = client.post("/batches")
        assert response.status_code == 422
        assert response.json()["error"] == "Validation failed"

    def test_list(self, client, uploaded):
        response = client.get("/batches")
        assert response.status_code == 200
        assert [b["id"] for b in response.json()] == [uploaded["batch"]["id"]]

    def test_detail_with_search(self, client, uploaded):
        batch_id = uploaded["batch"]["id"]

        response = client.get(f"/batches/{batch_id}", params={"search": "gad"})

        assert response.status_code == 200
        data = response.json()
        assert data["product_count"] == 2
        assert [p["code"] for p in data["products"]] == ["CODE2"]

    def test_detail_limit(self, client, uploaded):
        response = client.get(f"/batches/{uploaded['batch']['id']}", params={"limit": 1})
        assert len(response.json()["products"]) == 1

    def test_detail_missing(self, client):
        response = client.get("/batches/missing")
        assert response.status_code == 404
        assert response.json()["details"]["resource"] == "ImportBatch"

    def test_delete(self, client, uploaded):
        batch_id = uploaded["batch"]["id"]

        response = client.delete(f"/batches/{batch_id}")
        assert response.status_code == 204

        assert client.get("/batches").json() == []
        assert client.post("/scan", json={"code": "CODE2"}).json()["matched"] is False

    def test_delete_missing(self, client):
        assert client.delete("/batches/missing").status_code == 404


class TestScanAPI:
    """Tests for the scan endpoint."""

    def test_scan_scenario(self, client, uploaded):
        client.post("/scan", json={"code": "8001234567890"})
        client.post("/scan", json={"code": "CODE2"})
        response = client.post("/scan", json={"code": "8001234567890"})

        assert response.status_code == 200
        data = response.json()
        assert data["matched"] is True
        assert data["line"]["quantity"] == 2

        cart = client.get("/cart").json()
        assert cart["total_items"] == 3
        assert cart["total_value"] == "49.79"
        assert [l["code"] for l in cart["lines"]] == ["CODE1", "CODE2"]

    def test_scan_unknown(self, client, uploaded):
        data = client.post("/scan", json={"code": "0000000000000"}).json()
        assert data["matched"] is False
        assert data["product"]["description"] == UNKNOWN_DESCRIPTION
        assert data["product"]["brand"] == GENERIC_BRAND

    def test_scan_empty(self, client):
        response = client.post("/scan", json={"code": "   "})
        assert response.status_code == 422
        assert response.json()["error"] == "Empty code"

    def test_scan_missing_field(self, client):
        assert client.post("/scan", json={}).status_code == 422


class TestCartAPI:
    """Tests for cart editing and exports."""

    def test_update_quantity(self, client, uploaded):
        client.post("/scan", json={"code": "CODE2"})

        response = client.patch("/cart/CODE2", json={"delta": 2})

        assert response.status_code == 200
        assert response.json()["lines"][0]["quantity"] == 3

    def test_update_to_zero_removes(self, client, uploaded):
        client.post("/scan", json={"code": "CODE2"})
        response = client.patch("/cart/CODE2", json={"delta": -1})
        assert response.json()["lines"] == []

    def test_update_missing(self, client):
        response = client.patch("/cart/NOPE", json={"delta": 1})
        assert response.status_code == 404

    def test_remove_line(self, client, uploaded):
        client.post("/scan", json={"code": "CODE2"})
        response = client.delete("/cart/CODE2")
        assert response.status_code == 200
        assert response.json()["total_items"] == 0

    def test_key_with_slash(self, client):
        client.post("/scan", json={"code": "AB/12"})
        response = client.patch("/cart/AB/12", json={"delta": 1})
        assert response.status_code == 200
        assert response.json()["lines"][0]["quantity"] == 2

    def test_clear(self, client, uploaded):
        client.post("/scan", json={"code": "CODE1"})
        response = client.delete("/cart")
        assert response.status_code == 200
        assert response.json()["lines"] == []

    def test_order_csv(self, client, uploaded):
        client.post("/scan", json={"code": "CODE1"})

        response = client.get("/cart/export.csv")

        assert response.status_code == 200
        assert "text/csv" in response.headers["content-type"]
        assert 'filename="ordine_' in response.headers["content-disposition"]
        rows = response.text.splitlines()
        assert rows[0].startswith("Codice;Descrizione")
        assert rows[1] == "CODE1;Widget;ACME;1;19.90;19.90"

    def test_legacy_csv(self, client, uploaded):
        client.post("/scan", json={"code": "CODE1"})
        client.post("/scan", json={"code": "CODE1"})

        response = client.get("/cart/export/legacy.csv")

        assert 'filename="import_erp_' in response.headers["content-disposition"]
        assert response.text == "CODE1;2;19,90"

    def test_share(self, client, uploaded):
        client.post("/scan", json={"code": "CODE2"})
        assert client.get("/cart/share").json() == {"text": "1pz - CODE2 - Gadget"}


class TestIdentifyAPI:
    def test_disabled_returns_placeholder(self, client, monkeypatch):
        monkeypatch.setattr(settings, "assist_enabled", False)

        response = client.post("/identify", json={"code": "8001234567890"})

        assert response.status_code == 200
        assert response.json()["description"] == UNKNOWN_DESCRIPTION


class TestImportOffloaded:
    def test_import_runs_off_event_loop(self, client, order_session, sample_text, monkeypatch):
        seen = []
        original = order_session.import_file

        def recording(*args, **kwargs):
            try:
                asyncio.get_running_loop()
                seen.append("event-loop")
            except RuntimeError:
                seen.append("worker")
            return original(*args, **kwargs)

        monkeypatch.setattr(order_session, "import_file", recording)

        response = client.post(
            "/batches",
            files={"file": ("listino.csv", sample_text.encode("utf-8"), "text/csv")},
        )

        assert response.status_code == 201
        assert seen == ["worker"]


class TestOrderSessionDependency:
    """The process-wide session is created once even under concurrent first use."""

    def test_concurrent_first_use(self, session_factory, monkeypatch):
        created = []

        class SlowLoadSession(OrderSession):
            def load(self):
                created.append(self)
                time.sleep(0.05)
                return super().load()

        monkeypatch.setattr(main, "SessionLocal", session_factory)
        monkeypatch.setattr(main, "OrderSession", SlowLoadSession)
        monkeypatch.setattr(main, "_order_session", None)

        barrier = threading.Barrier(8)

        def first_use():
            barrier.wait()
            return main.get_order_session()

        with ThreadPoolExecutor(max_workers=8) as pool:
            sessions = list(pool.map(lambda _: first_use(), range(8)))

        assert len(created) == 1
        assert all(s is created[0] for s in sessions)
