"""Shared fixtures: in-memory credential store and a fake Stripe behind it."""

import os

os.environ.setdefault("DATABASE_DSN", "sqlite://")
os.environ.setdefault("OTEL_ENABLED", "false")

import pytest

from relaypay.common.db import Base, make_session_factory
from relaypay.services.relay.event_log import EventLog
from relaypay.services.relay.exceptions import RemoteServiceError
from relaypay.services.relay.gateway import DomainFound, DomainNotFound
from relaypay.services.relay.models import CredentialRecord
from relaypay.services.relay.service import RelayService
from relaypay.services.relay.store import CredentialStore


class FakeStripe:
    """Stripe account state shared by every gateway handed out in a test."""

    def __init__(self) -> None:
        self.domains: dict[str, dict] = {}
        self.customers: list[dict] = []
        self.sessions: dict[str, dict] = {}
        self.payment_intents: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.oauth_tokens: dict[str, dict] = {}
        self.accounts: dict[str, dict] = {}

    def record(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        if operation in self.failures:
            raise self.failures[operation]

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeGateway:
    """Drop-in for `PaymentGateway` backed by `FakeStripe`."""

    def __init__(self, secret_key: str, remote: FakeStripe) -> None:
        self.secret_key = secret_key
        self.remote = remote

    def lookup_payment_method_domain(self, domain_name):
        self.remote.record("payment_method_domains.list", domain_name)
        if domain_name in self.remote.domains:
            return DomainFound(self.remote.domains[domain_name])
        return DomainNotFound(domain_name)

    def register_payment_method_domain(self, domain_name):
        self.remote.record("payment_method_domains.create", domain_name)
        domain = {"id": f"pmd_{len(self.remote.domains) + 1}", "domain_name": domain_name}
        self.remote.domains[domain_name] = domain
        return domain

    def find_customer_by_email(self, email):
        self.remote.record("customers.list", email)
        matches = [customer for customer in self.remote.customers if customer["email"] == email]
        return matches[0] if matches else None

    def create_checkout_session(self, params):
        self.remote.record("checkout.sessions.create", params)
        session_id = f"cs_test_{len(self.remote.sessions) + 1}"
        session = {
            "id": session_id,
            "client_secret": f"{session_id}_secret",
            "status": "open",
            "payment_status": "unpaid",
            "customer_details": None,
            "payment_intent": None,
            "params": params,
        }
        self.remote.sessions[session_id] = session
        return session

    def retrieve_checkout_session(self, session_id):
        self.remote.record("checkout.sessions.retrieve", session_id)
        if session_id not in self.remote.sessions:
            raise RemoteServiceError("No such checkout.session", code="resource_missing", http_status=404)
        return self.remote.sessions[session_id]

    def retrieve_payment_intent(self, payment_intent_id):
        self.remote.record("payment_intents.retrieve", payment_intent_id)
        return self.remote.payment_intents[payment_intent_id]

    def exchange_oauth_code(self, code):
        self.remote.record("oauth.token", code)
        if code not in self.remote.oauth_tokens:
            raise RemoteServiceError("Authorization code does not exist", code="invalid_grant", http_status=400)
        return self.remote.oauth_tokens[code]

    def retrieve_account(self, account_id):
        self.remote.record("accounts.retrieve", account_id)
        return self.remote.accounts.get(account_id, {"id": account_id})


@pytest.fixture
def session_factory():
    factory = make_session_factory("sqlite://")
    Base.metadata.create_all(factory.kw["bind"])
    return factory


@pytest.fixture
def stripe_fake():
    return FakeStripe()


@pytest.fixture
def handle_factory(stripe_fake):
    return lambda secret_key: FakeGateway(secret_key, stripe_fake)


@pytest.fixture
def default_tenant():
    return CredentialRecord(tenant_id="default", secret_key="sk_default", public_key="pk_default")


@pytest.fixture
def store(session_factory, handle_factory):
    return CredentialStore(session_factory, handle_factory, event_log=EventLog())


@pytest.fixture
def store_with_default(session_factory, handle_factory, default_tenant):
    return CredentialStore(session_factory, handle_factory, default_tenant=default_tenant)


@pytest.fixture
def relay(store, stripe_fake):
    return RelayService(
        store,
        "https://relay.example.com/",
        platform_gateway_factory=lambda: FakeGateway("sk_platform", stripe_fake),
    )
