"""HTTP surface, driven through FastAPI's TestClient with a fake Stripe."""

import html
import json
import logging
import re

import pytest
from fastapi.testclient import TestClient

from relaypay.common.config import settings
from relaypay.services.relay import main
from relaypay.services.relay.exceptions import RemoteServiceError
from relaypay.services.relay.models import CredentialRecord


@pytest.fixture
def client(relay):
    main.app.dependency_overrides[main.get_service] = lambda: relay
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def examine_payload(response) -> dict:
    match = re.search(r'<pre id="payload">(.*?)</pre>', response.text, re.S)
    return json.loads(html.unescape(match.group(1)))


def test_authorize_checkout_and_status_end_to_end(client, stripe_fake):
    """Sanity check: authorize, pay and poll status through the HTTP surface."""

    auth = client.post("/authorize", json={"secretKey": "sk_x", "publicKey": "pk_x"})
    assert auth.status_code == 200
    assert auth.json()["type"] == "success"
    tenant_id = auth.json()["id"]
    assert tenant_id

    checkout = client.post(
        "/create-checkout-session",
        json={
            "client_id": tenant_id,
            "line_items": [{"price": "price_123", "quantity": 1}],
            "domain": "example.com",
        },
    )
    assert checkout.status_code == 200
    body = checkout.json()
    assert body["sessionId"] and body["clientSecret"]
    assert "example.com" in stripe_fake.domains

    status = client.get("/session-status", params={"client_id": tenant_id, "session_id": body["sessionId"]})
    assert status.status_code == 200
    assert status.json() == {
        "status": stripe_fake.sessions[body["sessionId"]]["status"],
        "payment_status": "unpaid",
        "customer_email": None,
    }


def test_session_status_includes_payment_error(client, relay, stripe_fake):
    """Card decline detail is the one remote error passed through verbatim."""

    relay.store.upsert("t1", "sk_1", "pk_1")
    stripe_fake.sessions["cs_1"] = {
        "id": "cs_1",
        "status": "open",
        "payment_status": "unpaid",
        "payment_intent": {"last_payment_error": {"code": "card_declined", "type": "card_error"}},
    }

    response = client.get("/session-status", params={"client_id": "t1", "session_id": "cs_1"})

    assert response.json()["error"] == {
        "code": "card_declined",
        "decline_code": None,
        "message": None,
        "type": "card_error",
    }


def test_checkout_for_unknown_tenant_returns_generic_error(client):
    """Unknown tenants get the generic checkout failure body."""

    response = client.post(
        "/create-checkout-session",
        json={"client_id": "ghost", "line_items": [{"price": "p", "quantity": 1}], "domain": "example.com"},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create checkout session"}


def test_checkout_remote_failure_does_not_leak_detail(client, relay, stripe_fake):
    """Stripe error text stays in the server log."""

    relay.store.upsert("t1", "sk_1", "pk_1")
    stripe_fake.failures["checkout.sessions.create"] = RemoteServiceError("secret internal detail")

    response = client.post(
        "/create-checkout-session",
        json={"client_id": "t1", "line_items": [{"price": "p", "quantity": 1}], "domain": "example.com"},
    )

    assert response.status_code == 500
    assert "secret internal detail" not in response.text


def test_session_status_failure_returns_generic_error(client, relay):
    """Missing sessions map to the generic status failure body."""

    relay.store.upsert("t1", "sk_1", "pk_1")

    response = client.get("/session-status", params={"client_id": "t1", "session_id": "cs_missing"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to get session status"}


def test_authorize_with_missing_key_fails_generically(client, relay):
    """Half a key pair is rejected without storing anything."""

    response = client.post("/authorize", json={"secretKey": "sk_x"})

    assert response.status_code == 500
    assert response.json() == {"type": "fail", "reason": "Authorization failed"}
    assert relay.store.list_all() == []


def test_unauthorize_removes_tenant(client, relay):
    """Unauthorize deletes the stored pair."""

    relay.store.upsert("t1", "sk_1", "pk_1")

    response = client.post("/unauthorize", json={"clientId": "t1"})

    assert response.json() == {"type": "success"}
    assert relay.store.get("t1") is None


def test_unauthorize_unknown_client_succeeds(client):
    """Unauthorize is idempotent for ids that were never stored."""

    response = client.post("/unauthorize", json={"clientId": "never-authorized"})

    assert response.status_code == 200
    assert response.json() == {"type": "success"}


def test_unauthorize_without_client_id_fails(client):
    """A blank client id is the one unauthorize failure."""

    response = client.post("/unauthorize", json={})

    assert response.status_code == 500
    assert response.json()["type"] == "fail"


def test_return_answers_200_with_body(client):
    """Return URL hands the session id back to the widget."""

    response = client.get("/return", params={"session_id": "cs_1"})

    assert response.status_code == 200
    assert response.json() == {"type": "PAYMENT_COMPLETE", "sessionId": "cs_1"}


def test_examine_shows_credentials_and_log(client, relay):
    """Diagnostic page embeds stored credentials and the event log."""

    relay.store.upsert("t1", "sk_1", "pk_1")

    response = client.get("/examine")

    payload = examine_payload(response)
    assert payload["creds"] == [{"id": "t1", "secretKey": "sk_1", "publicKey": "pk_1"}]
    assert payload["logs"]


def test_flush_clears_tenants_and_redirects_to_examine(client, relay):
    """Flush empties the store and lands on the diagnostic page."""

    relay.store.upsert("t1", "sk_1", "pk_1")

    response = client.get("/flush", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/examine"
    assert relay.store.list_all() == []


def test_admin_key_guards_diagnostic_endpoints(client, monkeypatch):
    """A configured admin key locks /examine and /flush."""

    monkeypatch.setattr(settings, "admin_api_key", "letmein")

    assert client.get("/examine").status_code == 401
    assert client.get("/flush", follow_redirects=False).status_code == 401
    assert client.get("/examine", headers={"x-api-key": "letmein"}).status_code == 200


def test_status_page_escapes_query_text(client):
    """Query text must never be rendered as markup."""

    response = client.get("/status", params={"status": "fail", "text": "</script><b>x</b>"})

    assert response.status_code == 200
    assert "<b>x</b>" not in response.text
    assert "postMessage" in response.text


def test_oauth_link_posts_success_to_opener(client, relay, stripe_fake):
    """OAuth success page reports the linked account to the opener and closes."""

    stripe_fake.oauth_tokens["ac_1"] = {
        "stripe_user_id": "acct_1",
        "access_token": "sk_connected",
        "stripe_publishable_key": "pk_connected",
    }
    stripe_fake.accounts["acct_1"] = {"individual": {"first_name": "Ada", "last_name": "Lovelace"}}

    response = client.get("/authorize", params={"code": "ac_1"})

    assert response.status_code == 200
    assert "AUTH_SUCCESS" in response.text
    assert "Ada Lovelace" in response.text
    assert "window.close()" in response.text
    assert len(relay.store.list_all()) == 1


def test_oauth_link_failure_posts_generic_reason(client, relay):
    """OAuth failures report a generic reason and store nothing."""

    response = client.get("/authorize", params={"code": "ac_unknown"})

    assert "AUTH_FAILURE" in response.text
    assert "Authorization code does not exist" not in response.text
    assert relay.store.list_all() == []


def test_health_and_metrics(client):
    """Liveness and scrape endpoints answer without a tenant."""

    assert client.get("/health").json() == {"ok": True}
    client.get("/health")

    metrics = client.get("/metrics").text
    assert "http_requests_total" in metrics


def test_checkout_without_domain_returns_generic_error(client, stripe_fake):
    """Malformed checkout bodies get the same generic 500 as any other failure."""

    response = client.post(
        "/create-checkout-session",
        json={"client_id": "t1", "line_items": [{"price": "p", "quantity": 1}]},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create checkout session"}
    assert "domain" not in response.text
    assert stripe_fake.calls == []


def test_session_status_without_session_id_returns_generic_error(client):
    """A missing session_id must not surface FastAPI's field-level 422 detail."""

    response = client.get("/session-status", params={"client_id": "t1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to get session status"}


def test_authorize_with_malformed_body_fails_generically(client):
    """Non-JSON authorize bodies still answer with the fail payload."""

    response = client.post("/authorize", content=b"not json", headers={"content-type": "application/json"})

    assert response.status_code == 500
    assert response.json() == {"type": "fail", "reason": "Authorization failed"}


def test_flush_logs_when_default_tenant_cannot_be_reseeded(client, relay, caplog):
    """A rejected default re-seed is logged, and the redirect still happens."""

    relay.store.default_tenant = CredentialRecord(tenant_id="default", secret_key="sk_default", public_key="")

    with caplog.at_level(logging.WARNING, logger="relaypay"):
        response = client.get("/flush", follow_redirects=False)

    assert response.status_code == 303
    assert "flush did not re-seed the default tenant" in caplog.text
