import json
from datetime import datetime, timezone

import pytest

from budgy.deps import get_receipt_repository
from budgy.documents import StoreError
from budgy.errors import ErrorKind, ReceiptError
from budgy.main import app
from budgy.models import UsageLog, User
from budgy.quota import month_key
from budgy.ratelimit import RATE_LIMIT_MESSAGE
from budgy.repository import ReceiptRepository, StorePolicy
from tests.conftest import STORE_A_TEXT, auth, no_sleep


def fresh_user(session_factory, user_id: str) -> User:
    db = session_factory()
    try:
        return db.query(User).filter(User.id == user_id).first()
    finally:
        db.close()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["service"] == "budgy-backend"
    assert body["timestamp"]


def test_process_receipt_end_to_end(client, free_user, fake_parser, session_factory):
    user_id, token = free_user

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 200
    receipt = response.json()
    assert receipt["storeName"] == "Store A"
    assert receipt["totalAmount"] == 5.5
    assert [item["name"] for item in receipt["items"]] == ["Milk", "Bread"]
    assert receipt["category"] == "Other"
    assert receipt["userId"] == user_id
    assert receipt["id"]
    assert receipt["scannedTime"]
    assert fake_parser.calls == [STORE_A_TEXT]

    stored = client.get(f"/api/receipts/{receipt['id']}", headers=auth(token))
    assert stored.status_code == 200
    assert stored.json() == receipt


def test_each_scan_gets_a_new_id(client, free_user, fake_parser):
    _, token = free_user
    first = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))
    second = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert first.json()["id"] != second.json()["id"]
    assert len(client.get("/api/receipts", headers=auth(token)).json()) == 2


def test_successful_processing_records_usage(client, free_user, fake_parser, session_factory):
    user_id, token = free_user

    client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    user = fresh_user(session_factory, user_id)
    assert user.usage_this_month == 1
    assert user.usage_month == month_key(datetime.now(timezone.utc))

    db = session_factory()
    try:
        log = db.query(UsageLog).filter(UsageLog.user_id == user_id).one()
    finally:
        db.close()
    assert log.text_length == len(STORE_A_TEXT)


def test_missing_token(client, fake_parser):
    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT})
    assert response.status_code == 401
    assert response.json() == {"error": "No authentication token provided", "kind": "unauthenticated"}
    assert fake_parser.calls == []


@pytest.mark.parametrize("header", ["Bearer not-a-real-token", "Basic abc", "Bearer "])
def test_invalid_token(client, free_user, fake_parser, header):
    response = client.post(
        "/api/process-receipt",
        json={"extractedText": STORE_A_TEXT},
        headers={"Authorization": header},
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid authentication token", "kind": "unauthenticated"}


def test_user_id_must_match_token(client, free_user, fake_parser):
    _, token = free_user
    response = client.post(
        "/api/process-receipt",
        json={"extractedText": STORE_A_TEXT, "userId": "someone-else"},
        headers=auth(token),
    )
    assert response.status_code == 401
    assert fake_parser.calls == []


def test_matching_user_id_is_accepted(client, free_user, fake_parser):
    user_id, token = free_user
    response = client.post(
        "/api/process-receipt",
        json={"extractedText": STORE_A_TEXT, "userId": user_id},
        headers=auth(token),
    )
    assert response.status_code == 200


@pytest.mark.parametrize("body", [{}, {"extractedText": ""}, {"extractedText": "   \n"}])
def test_empty_text_is_rejected(client, free_user, fake_parser, session_factory, body):
    user_id, token = free_user

    response = client.post("/api/process-receipt", json=body, headers=auth(token))

    assert response.status_code == 400
    assert response.json() == {"error": "No text provided for processing", "kind": "invalid_input"}
    assert fake_parser.calls == []
    assert fresh_user(session_factory, user_id).usage_this_month == 0


def test_malformed_body_is_a_bad_request(client, free_user, fake_parser, session_factory):
    user_id, token = free_user

    response = client.post("/api/process-receipt", json={"extractedText": 123}, headers=auth(token))

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert body["kind"] == "invalid_input"
    assert "extractedText" in body["details"]
    assert fake_parser.calls == []
    assert fresh_user(session_factory, user_id).usage_this_month == 0


def test_free_quota_exhausted(client, db, free_user, fake_parser):
    user_id, token = free_user
    user = db.query(User).filter(User.id == user_id).first()
    user.usage_this_month = 10
    user.usage_month = month_key(datetime.now(timezone.utc))
    db.commit()

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 429
    assert response.json() == {"error": "Processing quota exceeded. Please upgrade your plan.", "kind": "quota_exceeded"}
    assert fake_parser.calls == []


def test_last_months_usage_does_not_block(client, db, free_user, fake_parser, session_factory):
    user_id, token = free_user
    user = db.query(User).filter(User.id == user_id).first()
    user.usage_this_month = 10
    user.usage_month = "2000-01"
    db.commit()

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 200
    assert fresh_user(session_factory, user_id).usage_this_month == 1


def test_premium_user_is_not_limited(client, db, premium_user, fake_parser):
    user_id, token = premium_user
    user = db.query(User).filter(User.id == user_id).first()
    user.usage_this_month = 250
    user.usage_month = month_key(datetime.now(timezone.utc))
    db.commit()

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 200


@pytest.mark.parametrize("content", ["not json", "```json\n{}\n```", "[1, 2]", "", json.dumps({"note": "x"})])
def test_unusable_generation_output(client, free_user, fake_parser, session_factory, content):
    user_id, token = free_user
    fake_parser.content = content

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid response format from AI service"
    assert fresh_user(session_factory, user_id).usage_this_month == 0
    assert client.get("/api/receipts", headers=auth(token)).json() == []


def test_partially_malformed_output_is_kept(client, free_user, fake_parser):
    _, token = free_user
    fake_parser.content = json.dumps({
        "storeName": "Store A",
        "totalAmount": "five fifty",
        "items": [{"name": "Milk", "price": "3.50?"}, {"name": "Bread", "price": 2.0}],
    })

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 200
    receipt = response.json()
    assert receipt["storeName"] == "Store A"
    assert "price" not in receipt["items"][0]
    assert receipt["totalAmount"] == 2.0


def test_generation_failure(client, free_user, fake_parser, session_factory):
    user_id, token = free_user
    fake_parser.error = ReceiptError(ErrorKind.GENERATION_FAILURE, "Failed to process receipt", details="upstream 500")

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 502
    assert response.json() == {"error": "Failed to process receipt", "kind": "generation_failure", "details": "upstream 500"}
    assert fresh_user(session_factory, user_id).usage_this_month == 0


def test_provider_not_configured(client, free_user, monkeypatch):
    _, token = free_user
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 503
    assert response.json() == {"error": "Receipt processing is not available", "kind": "service_unavailable"}


def test_store_failure_does_not_count_usage(client, free_user, fake_parser, session_factory):
    user_id, token = free_user

    class BrokenStore:
        def set(self, user_id, doc_id, doc):
            raise StoreError("disk full")

    app.dependency_overrides[get_receipt_repository] = lambda: ReceiptRepository(
        BrokenStore(), StorePolicy(max_retries=2, retry_delay=0, sleep=no_sleep),
    )

    response = client.post("/api/process-receipt", json={"extractedText": STORE_A_TEXT}, headers=auth(token))

    assert response.status_code == 503
    assert response.json() == {"error": "Failed to access receipt storage", "kind": "store_failure", "details": "disk full"}
    assert fresh_user(session_factory, user_id).usage_this_month == 0


def test_shared_rate_limit(client, free_user):
    _, token = free_user

    for _ in range(50):
        assert client.get("/api/me", headers=auth(token)).status_code == 200

    response = client.get("/api/receipts", headers=auth(token))
    assert response.status_code == 429
    assert response.json() == {"error": RATE_LIMIT_MESSAGE}
