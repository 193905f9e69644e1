"""Tests for AWS Lambda handler."""

import asyncio
import base64
import json

import pytest

import lambda_handler as handler_module
from lambda_handler import lambda_handler
from reconciliation import ReconciliationEngine
from reconciliation.models import Offer

OFFER = {
    "id": "offer-1",
    "name": "Lambda Offer",
    "status": "ACTIVE",
    "payout_model": "REVENUE",
    "start_date": "2024-01-01",
    "team_pot_percent": 10,
    "participants": [{"member_id": "ana", "share_percent": 100}],
}


@pytest.fixture(autouse=True)
def engine(monkeypatch):
    """Fresh in-memory engine per test."""
    engine = ReconciliationEngine()
    monkeypatch.setattr(handler_module, "engine", engine)
    return engine


def post(path, payload):
    return lambda_handler({"httpMethod": "POST", "path": path, "body": json.dumps(payload)}, None)


class TestLambdaHandler:
    """Test the Lambda handler routes and responses."""

    def test_health_check(self):
        """GET /health returns healthy status."""
        event = {"httpMethod": "GET", "path": "/health"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "healthy"

    def test_api_info(self):
        """GET /api returns API information."""
        event = {"httpMethod": "GET", "path": "/api"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "ok"
        assert "/resolve_daily_entry" in body["endpoints"]

    def test_cors_preflight(self):
        """OPTIONS requests return CORS headers."""
        event = {"httpMethod": "OPTIONS", "path": "/compute_shares"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert "Access-Control-Allow-Origin" in response["headers"]
        assert "Access-Control-Allow-Methods" in response["headers"]

    def test_not_found(self):
        """Unknown paths return 404."""
        event = {"httpMethod": "GET", "path": "/unknown"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 404

    def test_http_api_event_format(self):
        """HTTP API (v2) events use rawPath and requestContext.http.method."""
        event = {"rawPath": "/health", "requestContext": {"http": {"method": "GET"}}}
        assert lambda_handler(event, None)["statusCode"] == 200

    def test_compute_shares_success(self):
        """POST /compute_shares returns the breakdown."""
        response = post("/compute_shares", {"offer": OFFER, "entry": {"date": "2024-01-05", "revenue": 250, "ads_spend": 50}})

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["team_share"] == "25.00"
        assert body["participants"][0]["amount"] == "25.00"

    def test_base64_body(self):
        """Base64-encoded bodies from API Gateway are decoded."""
        payload = {"offer": OFFER, "entry": {"date": "2024-01-05", "revenue": 100}}
        event = {
            "httpMethod": "POST",
            "path": "/compute_shares",
            "isBase64Encoded": True,
            "body": base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii"),
        }
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["team_share"] == "10.00"

    def test_empty_body(self):
        """POST without body returns 400."""
        response = lambda_handler({"httpMethod": "POST", "path": "/compute_shares", "body": ""}, None)
        assert response["statusCode"] == 400

    def test_invalid_json(self):
        """Malformed JSON returns 400."""
        response = lambda_handler({"httpMethod": "POST", "path": "/compute_shares", "body": "{not json"}, None)

        assert response["statusCode"] == 400
        assert "Invalid JSON" in json.loads(response["body"])["error"]

    def test_validation_error(self):
        """Invalid offer configuration returns 400."""
        bad_offer = dict(OFFER, team_pot_percent=101)
        response = post("/compute_shares", {"offer": bad_offer, "entry": {"date": "2024-01-05", "revenue": 1}})

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["error"]["code"] == "validation_error"

    def test_missing_field(self):
        """A missing required field returns 400."""
        response = post("/compute_shares", {"offer": OFFER})

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["status"] == "validation_failed"

    def test_scan_compliance_without_body(self, engine):
        """An empty scan uses the stored offers."""
        asyncio.run(engine.store.add_offer(Offer.from_dict(OFFER)))
        response = lambda_handler({"httpMethod": "POST", "path": "/scan_compliance"}, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["active_offers"] == 1


class TestResolveDailyEntryStatus:
    """Test status codes for entry resolution."""

    def test_created_then_conflict(self, engine):
        """First resolution is 201, the repeat is 409."""
        asyncio.run(engine.store.add_offer(Offer.from_dict(OFFER)))
        payload = {"offer_id": "offer-1", "date": "2024-01-05", "revenue": 100, "ads_spend": 0}

        first = post("/resolve_daily_entry", payload)
        second = post("/resolve_daily_entry", payload)

        assert first["statusCode"] == 201
        assert second["statusCode"] == 409
        assert json.loads(second["body"])["error"]["code"] == "conflict"

    def test_unknown_offer(self):
        """Resolving for an unknown offer is 404."""
        response = post("/resolve_daily_entry", {"offer_id": "nope", "date": "2024-01-05", "revenue": 1, "ads_spend": 0})
        assert response["statusCode"] == 404

    def test_negative_revenue(self, engine):
        """Negative revenue is 400."""
        asyncio.run(engine.store.add_offer(Offer.from_dict(OFFER)))
        response = post("/resolve_daily_entry", {"offer_id": "offer-1", "date": "2024-01-05", "revenue": -1, "ads_spend": 0})
        assert response["statusCode"] == 400


class TestLedgerRoutes:
    """Test the ledger endpoints."""

    def test_ledger_summary(self):
        """POST /ledger_summary totals the payload's transactions."""
        payload = {
            "transactions": [
                {"date": "2024-01-05", "type": "INCOME", "amount": 300},
                {"date": "2024-01-06", "type": "EXPENSE", "amount": 100},
            ],
            "members": [{"member_id": "ana", "share_percent": 100}],
        }
        response = post("/ledger_summary", payload)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["profit"] == "200.00"
        assert body["members"][0]["amount"] == "200.00"

    def test_ledger_timeline_without_body(self):
        """An empty store has an empty timeline."""
        response = lambda_handler({"httpMethod": "POST", "path": "/ledger_timeline"}, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["points"] == []
