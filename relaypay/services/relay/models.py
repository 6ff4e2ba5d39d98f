"""Relay persistence models (per-tenant Stripe credentials)."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from relaypay.common.db import Base


class TenantCredential(Base):
    """One tenant's Stripe key pair."""

    __tablename__ = "tenant_credentials"

    tenant_id: Mapped[str] = mapped_column(String, primary_key=True)
    secret_key: Mapped[str] = mapped_column(String)
    public_key: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


@dataclass(frozen=True)
class CredentialRecord:
    """Detached, immutable view of a `TenantCredential` row."""

    tenant_id: str
    secret_key: str
    public_key: str

    @classmethod
    def from_row(cls, row: TenantCredential) -> "CredentialRecord":
        return cls(tenant_id=row.tenant_id, secret_key=row.secret_key, public_key=row.public_key)

    @property
    def is_complete(self) -> bool:
        return bool(self.secret_key and self.public_key)
