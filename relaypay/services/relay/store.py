"""Durable tenant credential table coupled with the client cache.

Every mutation here also refreshes or evicts the matching `ClientCache` entry
while holding the store lock, so a cached handle never outlives the record it
was built from.
"""

import threading
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import delete, select

from relaypay.common.logging import logger
from relaypay.common.metrics import credential_mutations_total
from relaypay.services.relay.cache import ClientCache
from relaypay.services.relay.event_log import EventLog
from relaypay.services.relay.exceptions import InvalidCredentials
from relaypay.services.relay.gateway import PaymentGateway
from relaypay.services.relay.models import CredentialRecord, TenantCredential


HandleFactory = Callable[[str], PaymentGateway]


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a store mutation; `error` is set when it was skipped."""

    error: InvalidCredentials | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


OK = MutationResult()


def _blank(value) -> bool:
    return not isinstance(value, str) or not value


class CredentialStore:
    """Tenant id -> key pair table plus the cache of handles built from it."""

    def __init__(
        self,
        session_factory,
        handle_factory: HandleFactory,
        cache: ClientCache | None = None,
        default_tenant: CredentialRecord | None = None,
        event_log: EventLog | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.handle_factory = handle_factory
        self.cache = cache if cache is not None else ClientCache()
        self.default_tenant = default_tenant
        self.event_log = event_log if event_log is not None else EventLog()
        self.lock = threading.RLock()

    @property
    def default_tenant_id(self) -> str | None:
        return self.default_tenant.tenant_id if self.default_tenant else None

    def _rejected(self, operation: str, reason: str, tenant_id) -> MutationResult:
        credential_mutations_total.labels(operation=operation, outcome="invalid").inc()
        logger.warning("credential %s skipped tenant_id=%r reason=%s", operation, tenant_id, reason)
        return MutationResult(InvalidCredentials(reason))

    def upsert(self, tenant_id: str, secret_key: str, public_key: str) -> MutationResult:
        """Create or replace a tenant's keys and rebuild its cached handle.

        Errors from the handle factory propagate after the record is committed;
        the cache entry is left empty in that case.
        """

        if _blank(tenant_id):
            return self._rejected("upsert", "tenant id is required", tenant_id)
        if _blank(secret_key) or _blank(public_key):
            return self._rejected("upsert", "secret and public keys are required", tenant_id)

        with self.lock:
            # A failed rebuild below must not leave the old handle cached.
            self.cache.evict(tenant_id)
            with self.session_factory() as db:
                row = db.get(TenantCredential, tenant_id)
                if row is None:
                    db.add(TenantCredential(tenant_id=tenant_id, secret_key=secret_key, public_key=public_key))
                else:
                    row.secret_key = secret_key
                    row.public_key = public_key
                db.commit()
            self.cache.put(tenant_id, self.handle_factory(secret_key))

        credential_mutations_total.labels(operation="upsert", outcome="ok").inc()
        self.event_log.append({"event": "tenant_upserted", "tenant_id": tenant_id, "public_key": public_key})
        logger.info("credential upserted tenant_id=%s", tenant_id)
        return OK

    def remove(self, tenant_id: str) -> MutationResult:
        """Delete a tenant's keys and evict its handle; unknown ids succeed."""

        if _blank(tenant_id):
            return self._rejected("remove", "tenant id is required", tenant_id)

        with self.lock:
            with self.session_factory() as db:
                db.execute(delete(TenantCredential).where(TenantCredential.tenant_id == tenant_id))
                db.commit()
            self.cache.evict(tenant_id)

        credential_mutations_total.labels(operation="remove", outcome="ok").inc()
        self.event_log.append({"event": "tenant_removed", "tenant_id": tenant_id})
        logger.info("credential removed tenant_id=%s", tenant_id)
        return OK

    def remove_all(self) -> MutationResult:
        """Delete every tenant, then re-seed the configured default tenant."""

        with self.lock:
            with self.session_factory() as db:
                db.execute(delete(TenantCredential))
                db.commit()
            self.cache.clear()
            credential_mutations_total.labels(operation="remove_all", outcome="ok").inc()
            self.event_log.append({"event": "tenants_flushed"})
            logger.info("credential store flushed")
            if self.default_tenant is None:
                return OK
            seed = self.default_tenant
            return self.upsert(seed.tenant_id, seed.secret_key, seed.public_key)

    def get(self, tenant_id: str) -> CredentialRecord | None:
        if _blank(tenant_id):
            return None
        with self.session_factory() as db:
            row = db.get(TenantCredential, tenant_id)
            return CredentialRecord.from_row(row) if row is not None else None

    def list_all(self) -> list[CredentialRecord]:
        with self.session_factory() as db:
            rows = db.execute(select(TenantCredential).order_by(TenantCredential.created_at)).scalars()
            return [CredentialRecord.from_row(row) for row in rows]

    def seed_default(self) -> MutationResult:
        """Insert the default tenant at startup when it is configured but missing."""

        if self.default_tenant is None or self.get(self.default_tenant.tenant_id) is not None:
            return OK
        seed = self.default_tenant
        return self.upsert(seed.tenant_id, seed.secret_key, seed.public_key)
