"""Error taxonomy for tenant resolution, credential mutation and Stripe calls."""


class RelayError(Exception):
    """Base class for relay failures that handlers translate to responses."""


class UnauthorizedTenant(RelayError):
    """Tenant id is missing, unknown, or points at an incomplete record."""

    def __init__(self, tenant_id: str | None, reason: str = "unknown tenant") -> None:
        super().__init__(f"unauthorized tenant {tenant_id!r}: {reason}")
        self.tenant_id = tenant_id
        self.reason = reason


class InvalidCredentials(RelayError):
    """A credential mutation was attempted with missing or empty fields.

    Returned inside `MutationResult` rather than raised.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RemoteServiceError(RelayError):
    """Any failure reported by (or while reaching) the payment platform."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        decline_code: str | None = None,
        error_type: str | None = None,
        http_status: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.decline_code = decline_code
        self.error_type = error_type
        self.http_status = http_status
        self.retryable = retryable
