"""
End-to-end tests for the HTTP surface.

The push API is an httpx.MockTransport and the receipt store an in-memory fake;
both are injected through FastAPI dependency overrides.
"""
import json
import logging
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

# Add backend directory to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from pos_portal.config import Settings
from pos_portal.main import app, get_app_settings, get_push_client, get_registry, get_store
from pos_portal.services.external.push_client import PushClient
from pos_portal.services.retailers.registry import RetailerRegistry

API_URL = "https://sales-api.test/api/PushReceipts"
ENVIRON = {"R001_API_USER": "coffee", "R001_API_PASS": "s3cret"}
RETAILERS_CONFIG = json.dumps([
    {"key": "R001", "name": "Coffee Corner", "mall": "City Mall", "brand": "Coffee Corner",
     "unit": "G-12", "envUserVar": "R001_API_USER", "envPassVar": "R001_API_PASS"},
])

SHIFT_OCT_20 = "/Date(1760936400000)/"
SHIFT_OCT_21 = "/Date(1761022800000)/"


class FakeStore:
    """In-memory ReceiptStore: documents get sequential ids and increasing created_at."""

    def __init__(self):
        self.rows = []
        self._next_id = 1
        self._clock = datetime(2025, 10, 20, 10, 31, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def add(self, collection, document):
        with self._lock:
            row = dict(document)
            row["collection"] = collection
            row["id"] = f"doc-{self._next_id}"
            row["created_at"] = (self._clock + timedelta(seconds=self._next_id)).isoformat()
            self._next_id += 1
            self.rows.append(row)
            return row["id"]

    def query(self, collection):
        rows = [r for r in self.rows if r["collection"] == collection]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    def delete(self, collection, doc_id):
        self.rows = [r for r in self.rows if not (r["collection"] == collection and r["id"] == doc_id)]


def push_body(codes, result_code="200", message="Success"):
    return {
        "ResultCode": result_code,
        "ReturnMessage": message,
        "PushShiftReturnResult": [{"ReturnCode": code} for code in codes],
    }


class PushApi:
    """Scripted push API: records request bodies, answers with the configured reply."""

    def __init__(self):
        self.requests = []
        self.reply(200, json=push_body(["200"]))

    def reply(self, status_code, **kwargs):
        self._status_code = status_code
        self._kwargs = kwargs

    def __call__(self, request):
        self.requests.append(json.loads(request.content))
        return httpx.Response(self._status_code, **self._kwargs)

    @property
    def called(self):
        return len(self.requests) > 0


def make_receipt(number, receipt_date="20 Oct 2025 02:30 PM", shift_day="20 Oct 2025 09:00 AM", **extra):
    receipt = {
        "ReceiptNo": number,
        "ReceiptDate": receipt_date,
        "ShiftDay": shift_day,
        "Total": "100",
        "Tax": "5",
        "Type": "0",
    }
    receipt.update(extra)
    return receipt


@pytest.fixture
def portal():
    """Yields (client, push_api, store) with all collaborators overridden."""
    store = FakeStore()
    push_api = PushApi()
    settings = Settings(BUSINESS_TIMEZONE="Asia/Dubai", DEFAULT_SHIFT_HOUR=9, MAX_PASTE_ROWS=50)
    registry = RetailerRegistry.from_json(RETAILERS_CONFIG)
    push_client = PushClient(API_URL, transport=httpx.MockTransport(push_api), environ=ENVIRON)

    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_push_client] = lambda: push_client
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app), push_api, store
    finally:
        app.dependency_overrides.clear()


def test_health(portal):
    client, _, _ = portal
    assert client.get("/health").json() == {"status": "ok"}


def test_list_retailers(portal):
    client, _, _ = portal
    response = client.get("/api/retailers")
    assert response.status_code == 200
    assert response.json() == [{"key": "R001", "name": "Coffee Corner"}]


def test_upload_persists_and_is_queryable(portal):
    client, push_api, _ = portal

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("INV-1")]})
    assert response.status_code == 200
    body = response.json()
    assert body["ResultCode"] == "200"
    assert body["PersistedCount"] == 1

    sent = push_api.requests[0]["PushReceiptShifts"]
    assert len(sent) == 1
    assert sent[0]["ShiftDay"] == SHIFT_OCT_20
    assert sent[0]["PushReceipts"][0]["Gross"] == 105.0

    receipts = client.get("/api/get-receipts", params={"retailerKey": "R001"}).json()
    assert len(receipts) == 1
    stored = receipts[0]
    assert stored["receiptNo"] == "INV-1"
    assert stored["gross"] == 105.0
    assert stored["type"] == 0
    assert stored["receiptDate"] == "/Date(1760956200000)/"
    assert stored["shiftDay"] == SHIFT_OCT_20
    assert stored["saleChannel"] == "Store-sales"
    assert stored["receiptId"] == sent[0]["PushReceipts"][0]["Id"]
    assert stored["createdAt"].startswith("2025-10-20T10:31")


def test_wire_dates_returned_verbatim(portal):
    client, push_api, _ = portal
    receipt = make_receipt("INV-1", receipt_date="/Date(1760956200000+0400)/", shift_day=SHIFT_OCT_20)

    client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [receipt]})

    assert push_api.requests[0]["PushReceiptShifts"][0]["PushReceipts"][0]["ReceiptDate"] == "/Date(1760956200000+0400)/"
    stored = client.get("/api/get-receipts", params={"retailerKey": "R001"}).json()[0]
    assert stored["receiptDate"] == "/Date(1760956200000+0400)/"


def test_partial_failure_persists_only_accepted_shifts(portal):
    client, push_api, store = portal
    push_api.reply(500, json=push_body(["200", "702"], result_code="500", message="Partial"))
    receipts = [
        make_receipt("A"),
        make_receipt("B", shift_day="21 Oct 2025 09:00 AM"),
        make_receipt("C"),
    ]

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": receipts})

    assert response.status_code == 200
    body = response.json()
    assert body["ResultCode"] == "500"
    assert [r["ReturnCode"] for r in body["PushShiftReturnResult"]] == ["200", "702"]
    assert body["PersistedCount"] == 2
    assert [s["ShiftDay"] for s in push_api.requests[0]["PushReceiptShifts"]] == [SHIFT_OCT_20, SHIFT_OCT_21]
    assert sorted(r["receipt_no"] for r in store.rows) == ["A", "C"]


def test_invalid_record_rejects_batch_before_submission(portal):
    client, push_api, store = portal
    receipts = [make_receipt("A"), make_receipt("B", Total="-5.00")]

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": receipts})

    assert response.status_code == 400
    body = response.json()
    assert body["field"] == "total"
    assert body["position"] == 2
    assert not push_api.called
    assert store.rows == []


def test_missing_inputs(portal):
    client, push_api, _ = portal

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": []})
    assert response.status_code == 400
    assert response.json()["error"] == "No receipt data provided."

    response = client.post("/api/upload-sales", json={"receipts": [make_receipt("A")]})
    assert response.status_code == 400
    assert response.json()["error"] == "No retailer selected."
    assert not push_api.called


def test_unknown_retailer(portal):
    client, push_api, _ = portal
    response = client.post("/api/upload-sales", json={"retailerKey": "NOPE", "receipts": [make_receipt("A")]})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid retailer key: NOPE"}
    assert not push_api.called


def test_rejection_mirrors_upstream_status(portal):
    client, push_api, store = portal
    push_api.reply(401, json={"ResultCode": "401", "ReturnMessage": "Unauthorized"})

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("A")]})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert store.rows == []


def test_non_json_response_is_bad_gateway(portal):
    client, push_api, store = portal
    push_api.reply(503, text="Service Unavailable")

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("A")]})

    assert response.status_code == 502
    assert store.rows == []


def test_missing_credentials_is_generic_server_error(portal):
    client, push_api, _ = portal
    app.dependency_overrides[get_push_client] = lambda: PushClient(
        API_URL, transport=httpx.MockTransport(push_api), environ={}
    )

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("A")]})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server configuration issue."}
    assert not push_api.called


def test_missing_retailer_config(portal):
    client, _, _ = portal
    app.dependency_overrides[get_registry] = lambda: RetailerRegistry.from_json(None)

    response = client.get("/api/retailers")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server configuration issue."}


def test_store_not_configured(portal):
    client, push_api, _ = portal
    app.dependency_overrides[get_store] = lambda: None

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("A")]})
    assert response.status_code == 500
    assert not push_api.called

    response = client.get("/api/get-receipts", params={"retailerKey": "R001"})
    assert response.status_code == 500


def test_manual_source_defaults_shift_day(portal):
    client, push_api, _ = portal
    receipt = make_receipt("M-1", shift_day="", Type="")

    response = client.post(
        "/api/upload-sales", json={"retailerKey": "R001", "source": "manual", "receipts": [receipt]}
    )

    assert response.status_code == 200
    sent = push_api.requests[0]["PushReceiptShifts"][0]
    assert sent["ShiftDay"].startswith("/Date(")
    assert sent["PushReceipts"][0]["Type"] == 0


def test_csv_upload(portal):
    client, push_api, store = portal
    csv_text = (
        "ReceiptNo,ReceiptDate,ShiftDay,Total,Tax,Type\n"
        "INV-1,20 Oct 2025 02:30 PM,20 Oct 2025 09:00 AM,100.00,5.00,0\n"
        "INV-2,21 Oct 2025 11:00 AM,21 Oct 2025 09:00 AM,50.00,2.50,1\n"
    )
    push_api.reply(200, json=push_body(["200", "200"]))

    response = client.post(
        "/api/upload-sales/csv",
        data={"retailerKey": "R001"},
        files={"file": ("sales.csv", csv_text.encode("utf-8"), "text/csv")},
    )

    assert response.status_code == 200
    assert response.json()["PersistedCount"] == 2
    assert len(push_api.requests[0]["PushReceiptShifts"]) == 2
    assert sorted(r["type"] for r in store.rows) == [0, 1]


def test_csv_upload_missing_column(portal):
    client, push_api, _ = portal
    response = client.post(
        "/api/upload-sales/csv",
        data={"retailerKey": "R001"},
        files={"file": ("sales.csv", b"ReceiptNo,Total\nINV-1,100\n", "text/csv")},
    )
    assert response.status_code == 400
    assert not push_api.called


def test_paste_upload(portal):
    client, push_api, store = portal
    paste = "20 Oct 2025 02:30 PM\tINV-9\t20 Oct 2025 09:00 AM\t5\t100\t\t\t\n"

    response = client.post("/api/upload-sales/paste", json={"retailerKey": "R001", "pasteData": paste})

    assert response.status_code == 200
    receipt = push_api.requests[0]["PushReceiptShifts"][0]["PushReceipts"][0]
    assert receipt["ReceiptNo"] == "INV-9"
    assert receipt["Total"] == 100.0
    assert receipt["Tax"] == 5.0
    assert receipt["Gross"] == 105.0
    assert receipt["SaleChannel"] == "Store-sales"
    assert len(store.rows) == 1


def test_delete_receipt(portal):
    client, _, _ = portal
    client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("INV-1")]})
    doc_id = client.get("/api/get-receipts", params={"retailerKey": "R001"}).json()[0]["id"]

    response = client.post("/api/delete-receipt", json={"retailerKey": "R001", "docId": doc_id})

    assert response.status_code == 200
    assert response.json() == {"success": True, "docId": doc_id}
    assert client.get("/api/get-receipts", params={"retailerKey": "R001"}).json() == []


def test_delete_requires_both_fields(portal):
    client, _, _ = portal
    response = client.post("/api/delete-receipt", json={"retailerKey": "R001"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing retailerKey or docId."


def test_get_receipts_requires_retailer(portal):
    client, _, _ = portal
    response = client.get("/api/get-receipts")
    assert response.status_code == 400
    assert response.json()["error"] == "Missing retailerKey query parameter."


def test_get_receipts_newest_first(portal):
    client, push_api, _ = portal
    push_api.reply(200, json=push_body(["200"]))
    client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("FIRST")]})
    client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("SECOND")]})

    receipts = client.get("/api/get-receipts", params={"retailerKey": "R001"}).json()
    assert [r["receiptNo"] for r in receipts] == ["SECOND", "FIRST"]


def test_export_receipts(portal):
    client, _, _ = portal
    client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("INV-1")]})

    response = client.get("/api/export-receipts", params={"retailerKey": "R001", "month": 10, "year": 2025})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="receipts_coffee_corner_2025-Oct.csv"' in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0].startswith("Receipt No,Receipt Date")
    assert lines[1].startswith("INV-1,2025-10-20 14:30:00,2025-10-20 09:00:00,Sale,100.00,5.00,105.00")

    response = client.get("/api/export-receipts", params={"retailerKey": "R001", "month": 11, "year": 2025})
    assert len(response.text.splitlines()) == 1


def test_export_rejects_bad_month(portal):
    client, _, _ = portal
    response = client.get("/api/export-receipts", params={"retailerKey": "R001", "month": 13})
    assert response.status_code == 422


def test_rejection_with_non_error_status_is_bad_gateway(portal):
    client, push_api, _ = portal
    push_api.reply(302, json={"ResultCode": "302", "ReturnMessage": "Moved"})

    response = client.post("/api/upload-sales", json={"retailerKey": "R001", "receipts": [make_receipt("A")]})

    assert response.status_code == 502
    assert response.json() == {"error": "Moved"}


def test_store_read_failure_returns_error_body(portal, monkeypatch):
    client, _, store = portal

    def failing_query(collection):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(store, "query", failing_query)

    response = client.get("/api/get-receipts", params={"retailerKey": "R001"})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch receipts data."}

    response = client.get("/api/export-receipts", params={"retailerKey": "R001"})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch receipts data."}


def test_store_delete_failure_returns_error_body(portal, monkeypatch):
    client, _, store = portal

    def failing_delete(collection, doc_id):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(store, "delete", failing_delete)

    response = client.post("/api/delete-receipt", json={"retailerKey": "R001", "docId": "doc-1"})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to delete receipt."}


def test_lifespan_configures_logging_and_collaborators():
    settings = Settings(RETAILERS_CONFIG=RETAILERS_CONFIG, EXTERNAL_API_URL=API_URL, LOG_LEVEL="DEBUG")
    store = FakeStore()

    with patch("pos_portal.main.get_settings", return_value=settings), \
            patch("pos_portal.main.create_receipt_store", return_value=store), \
            patch("pos_portal.main.logging.basicConfig") as basic_config:
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert app.state.settings is settings
            assert app.state.store is store
            assert app.state.registry.resolve("R001").display_name == "Coffee Corner"

    basic_config.assert_called_once_with(level=logging.DEBUG)
