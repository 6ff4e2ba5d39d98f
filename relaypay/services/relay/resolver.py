"""Tenant id -> ready-to-use remote handle, filling the cache lazily."""

from relaypay.common.logging import logger
from relaypay.common.metrics import tenant_resolutions_total
from relaypay.services.relay.exceptions import UnauthorizedTenant
from relaypay.services.relay.gateway import PaymentGateway
from relaypay.services.relay.store import CredentialStore


class TenantResolver:
    """Resolves tenants against a `CredentialStore` and its client cache."""

    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def _unauthorized(self, tenant_id: str | None, reason: str) -> UnauthorizedTenant:
        tenant_resolutions_total.labels(outcome="unauthorized").inc()
        logger.warning("unauthorized tenant tenant_id=%r reason=%s", tenant_id, reason)
        return UnauthorizedTenant(tenant_id, reason)

    def resolve(self, tenant_id: str | None) -> PaymentGateway:
        """Return the handle for `tenant_id`, or the default tenant when none is given.

        Raises `UnauthorizedTenant` when no usable record exists. A cached
        handle is trusted as-is until a store mutation evicts or replaces it.
        """

        if not tenant_id:
            tenant_id = self.store.default_tenant_id
        if not tenant_id:
            raise self._unauthorized(tenant_id, "no tenant id supplied")

        # Record check and cache fill happen under the store lock so a
        # concurrent upsert/remove cannot slip in between them.
        with self.store.lock:
            record = self.store.get(tenant_id)
            if record is None:
                raise self._unauthorized(tenant_id, "no credentials stored")
            if not record.is_complete:
                raise self._unauthorized(tenant_id, "incomplete credential record")

            handle = self.store.cache.get(tenant_id)
            if handle is not None:
                tenant_resolutions_total.labels(outcome="cache_hit").inc()
                return handle

            handle = self.store.handle_factory(record.secret_key)
            self.store.cache.put(tenant_id, handle)
        tenant_resolutions_total.labels(outcome="cache_fill").inc()
        logger.info("client handle built tenant_id=%s", tenant_id)
        return handle
