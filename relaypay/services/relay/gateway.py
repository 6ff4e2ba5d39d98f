"""Stripe access for one tenant.

A `PaymentGateway` is the remote handle cached per tenant. It wraps a
`stripe.StripeClient` bound to the tenant's secret key, converts Stripe objects
to plain dicts and every `stripe.StripeError` to `RemoteServiceError`.
"""

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable

import stripe

from relaypay.common.logging import logger
from relaypay.common.metrics import remote_call_duration_seconds, remote_calls_total
from relaypay.services.relay.exceptions import RemoteServiceError


@dataclass(frozen=True)
class DomainFound:
    """Payment method domain already registered."""

    domain: dict[str, Any]


@dataclass(frozen=True)
class DomainNotFound:
    """Stripe has no payment method domain for `domain_name`."""

    domain_name: str


DomainLookup = DomainFound | DomainNotFound


def to_plain(value: Any) -> Any:
    """Recursively convert Stripe objects into builtin dicts/lists."""

    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def remote_error(exc: stripe.StripeError) -> RemoteServiceError:
    """Translate a Stripe SDK error, keeping Stripe's own classification."""

    error = getattr(exc, "error", None)
    return RemoteServiceError(
        exc.user_message or str(exc) or type(exc).__name__,
        code=exc.code,
        decline_code=getattr(error, "decline_code", None),
        error_type=getattr(error, "type", None),
        http_status=exc.http_status,
        retryable=isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError)),
    )


class PaymentGateway:
    """Remote handle bound to one secret key."""

    def __init__(self, secret_key: str, client: stripe.StripeClient) -> None:
        self.secret_key = secret_key
        self.client = client

    @classmethod
    def from_secret_key(
        cls,
        secret_key: str,
        timeout_seconds: float = 10.0,
        api_version: str | None = None,
    ) -> "PaymentGateway":
        """Build a handle whose calls time out after `timeout_seconds` and never retry."""

        client = stripe.StripeClient(
            secret_key,
            stripe_version=api_version,
            max_network_retries=0,
            http_client=stripe.RequestsClient(timeout=timeout_seconds),
        )
        return cls(secret_key, client)

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        start = perf_counter()
        try:
            result = fn(*args, **kwargs)
        except stripe.StripeError as exc:
            remote_calls_total.labels(operation=operation, outcome="error").inc()
            logger.warning(
                "remote call failed operation=%s code=%s status=%s",
                operation,
                exc.code,
                exc.http_status,
            )
            raise remote_error(exc) from exc
        finally:
            remote_call_duration_seconds.labels(operation=operation).observe(max(0.0, perf_counter() - start))
        remote_calls_total.labels(operation=operation, outcome="ok").inc()
        return to_plain(result)

    def lookup_payment_method_domain(self, domain_name: str) -> DomainLookup:
        """Find the registration for `domain_name`; "not found" is a result, not an error."""

        try:
            listing = self._call(
                "payment_method_domains.list",
                self.client.v1.payment_method_domains.list,
                params={"domain_name": domain_name, "limit": 1},
            )
        except RemoteServiceError as exc:
            if exc.code == "resource_missing":
                return DomainNotFound(domain_name)
            raise
        data = listing.get("data") or []
        if not data:
            return DomainNotFound(domain_name)
        return DomainFound(data[0])

    def register_payment_method_domain(self, domain_name: str) -> dict[str, Any]:
        return self._call(
            "payment_method_domains.create",
            self.client.v1.payment_method_domains.create,
            params={"domain_name": domain_name},
        )

    def find_customer_by_email(self, email: str) -> dict[str, Any] | None:
        listing = self._call(
            "customers.list",
            self.client.v1.customers.list,
            params={"email": email, "limit": 1},
        )
        data = listing.get("data") or []
        return data[0] if data else None

    def create_checkout_session(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._call("checkout.sessions.create", self.client.v1.checkout.sessions.create, params=params)

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Fetch a session with its payment intent expanded."""

        return self._call(
            "checkout.sessions.retrieve",
            self.client.v1.checkout.sessions.retrieve,
            session_id,
            params={"expand": ["payment_intent"]},
        )

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        return self._call("payment_intents.retrieve", self.client.v1.payment_intents.retrieve, payment_intent_id)

    # Platform-level calls, used with the platform secret key.

    def exchange_oauth_code(self, code: str) -> dict[str, Any]:
        return self._call(
            "oauth.token",
            self.client.oauth.token,
            params={"grant_type": "authorization_code", "code": code},
        )

    def retrieve_account(self, account_id: str) -> dict[str, Any]:
        return self._call("accounts.retrieve", self.client.v1.accounts.retrieve, account_id)
