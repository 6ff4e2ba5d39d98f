"""In-memory tenant id -> remote handle map.

Holds no lock of its own; `CredentialStore` serializes every access.
"""

from relaypay.common.metrics import cached_handles
from relaypay.services.relay.gateway import PaymentGateway


class ClientCache:
    def __init__(self) -> None:
        self._handles: dict[str, PaymentGateway] = {}

    def get(self, tenant_id: str) -> PaymentGateway | None:
        return self._handles.get(tenant_id)

    def put(self, tenant_id: str, handle: PaymentGateway) -> None:
        self._handles[tenant_id] = handle
        cached_handles.set(len(self._handles))

    def evict(self, tenant_id: str) -> None:
        self._handles.pop(tenant_id, None)
        cached_handles.set(len(self._handles))

    def clear(self) -> None:
        self._handles.clear()
        cached_handles.set(0)

    def __contains__(self, tenant_id: str) -> bool:
        return tenant_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)
