"""Central environment-driven settings for the relay process.

Loaded once at startup. Behavior is controlled by environment variables (see
`.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "relaypay"
    log_level: str = "INFO"
    database_dsn: str = "sqlite:///./relaypay.db"
    port: int = 4242
    public_base_url: str = "http://localhost:4242"

    # Seed tenant re-created by a flush; only honored when all three are set.
    default_tenant_id: str = ""
    default_secret_key: str = ""
    default_public_key: str = ""

    stripe_platform_secret_key: str = ""
    stripe_api_version: str = "2025-03-31.basil"
    remote_timeout_seconds: float = 10.0

    admin_api_key: str = ""
    postmessage_target_origin: str = "*"
    cors_origins: list[str] = ["http://localhost:4200"]
    cors_origin_regex: str = r"https://([a-z0-9-]+\.)*(elfsight\.com|elfsightcdn\.com|elf\.site)"
    event_log_max_entries: int = 0

    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def has_default_tenant(self) -> bool:
        return bool(self.default_tenant_id and self.default_secret_key and self.default_public_key)


settings = CommonSettings()
