"""Relay orchestration.

Turns widget requests into tenant resolutions plus Stripe calls: checkout
session creation (domain registration, customer lookup-or-create), session
status, tenant linking by key pair or Connect OAuth, un-linking and flush.
Stripe calls never run while the store lock is held.
"""

from typing import Any, Callable
from uuid import uuid4

from relaypay.common.logging import logger, tenant_id_ctx
from relaypay.common.metrics import checkout_sessions_total
from relaypay.services.relay.event_log import EventLog
from relaypay.services.relay.exceptions import RelayError
from relaypay.services.relay.gateway import DomainNotFound, PaymentGateway
from relaypay.services.relay.popup import account_name
from relaypay.services.relay.resolver import TenantResolver
from relaypay.services.relay.schemas import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    LinkedAccount,
    PaymentError,
    SessionStatusResponse,
)
from relaypay.services.relay.store import CredentialStore, MutationResult


RETURN_PATH = "/return?session_id={CHECKOUT_SESSION_ID}"


class RelayService:
    """Owns the credential store, resolver and event log for one process."""

    def __init__(
        self,
        store: CredentialStore,
        public_base_url: str,
        platform_gateway_factory: Callable[[], PaymentGateway] | None = None,
    ) -> None:
        self.store = store
        self.resolver = TenantResolver(store)
        self.public_base_url = public_base_url.rstrip("/")
        self.platform_gateway_factory = platform_gateway_factory

    @property
    def event_log(self) -> EventLog:
        return self.store.event_log

    def _resolve(self, tenant_id: str | None) -> PaymentGateway:
        tenant_id_ctx.set(tenant_id or "")
        return self.resolver.resolve(tenant_id)

    def ensure_payment_method_domain(self, gateway: PaymentGateway, domain: str) -> None:
        """Register `domain` for payment methods unless Stripe already knows it.

        Read-then-create, not a lock: two concurrent first requests for the same
        domain may both try to register it.
        """

        lookup = gateway.lookup_payment_method_domain(domain)
        if isinstance(lookup, DomainNotFound):
            registered = gateway.register_payment_method_domain(domain)
            self.event_log.append({"event": "domain_registered", "domain": domain, "id": registered.get("id")})
            logger.info("payment method domain registered domain=%s", domain)

    def build_session_params(
        self, gateway: PaymentGateway, req: CheckoutSessionRequest
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "line_items": req.line_items,
            "mode": req.mode or "payment",
            "ui_mode": "custom",
            "return_url": f"{self.public_base_url}{RETURN_PATH}",
            "invoice_creation": {"enabled": True},
            "payment_method_types": ["card"],
        }
        new_customer = {
            "customer_creation": "always",
            "saved_payment_method_options": {"payment_method_save": "enabled"},
        }
        if not req.customer_email:
            params.update(new_customer)
            return params

        customer = gateway.find_customer_by_email(req.customer_email)
        self.event_log.append(
            {"event": "customer_lookup", "email": req.customer_email, "found": customer is not None}
        )
        if customer is not None:
            params["customer"] = customer["id"]
        else:
            params["customer_email"] = req.customer_email
            params.update(new_customer)
        return params

    def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSessionResponse:
        """Create a custom-UI checkout session for the request's tenant.

        Raises `UnauthorizedTenant` or `RemoteServiceError`; nothing is retried.
        """

        gateway = self._resolve(req.client_id)
        try:
            self.ensure_payment_method_domain(gateway, req.domain)
            session = gateway.create_checkout_session(self.build_session_params(gateway, req))
        except RelayError:
            checkout_sessions_total.labels(outcome="error").inc()
            raise
        checkout_sessions_total.labels(outcome="created").inc()
        self.event_log.append({"event": "checkout_session_created", "session_id": session["id"]})
        return CheckoutSessionResponse(clientSecret=session.get("client_secret"), sessionId=session["id"])

    def session_status(self, tenant_id: str | None, session_id: str) -> SessionStatusResponse:
        """Report a session's status, surfacing the intent's last payment error if any."""

        gateway = self._resolve(tenant_id)
        session = gateway.retrieve_checkout_session(session_id)
        customer_details = session.get("customer_details") or {}
        response = SessionStatusResponse(
            status=session.get("status"),
            payment_status=session.get("payment_status"),
            customer_email=customer_details.get("email"),
        )

        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, str):
            payment_intent = gateway.retrieve_payment_intent(payment_intent)
        last_error = (payment_intent or {}).get("last_payment_error")
        if last_error:
            response.error = PaymentError(
                code=last_error.get("code"),
                decline_code=last_error.get("decline_code"),
                message=last_error.get("message"),
                type=last_error.get("type"),
            )
        return response

    def authorize(self, secret_key: str, public_key: str) -> str:
        """Store a key pair under a freshly minted tenant id and return the id."""

        tenant_id = str(uuid4())
        result = self.store.upsert(tenant_id, secret_key, public_key)
        if result.error is not None:
            raise result.error
        return tenant_id

    def link_oauth_account(self, code: str) -> LinkedAccount:
        """Exchange a Connect authorization code and store the connected account's keys."""

        if self.platform_gateway_factory is None:
            raise RelayError("no platform secret key configured")
        platform = self.platform_gateway_factory()
        token = platform.exchange_oauth_code(code)
        account = platform.retrieve_account(token["stripe_user_id"])

        tenant_id = self.authorize(token.get("access_token", ""), token.get("stripe_publishable_key", ""))
        self.event_log.append(
            {"event": "oauth_linked", "tenant_id": tenant_id, "account_id": token["stripe_user_id"]}
        )
        return LinkedAccount(id=tenant_id, pk=token.get("stripe_publishable_key"), accountName=account_name(account))

    def unauthorize(self, tenant_id: str) -> MutationResult:
        return self.store.remove(tenant_id)

    def flush(self) -> MutationResult:
        return self.store.remove_all()

    def examine(self) -> dict[str, Any]:
        """Diagnostic dump: every stored credential (secrets included) plus the event log."""

        creds = [
            {"id": record.tenant_id, "secretKey": record.secret_key, "publicKey": record.public_key}
            for record in self.store.list_all()
        ]
        return {"creds": creds, "logs": self.event_log.snapshot()}
