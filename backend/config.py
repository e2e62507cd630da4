"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load provider secrets from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    Everything else is left to the environment and ``.env`` sources.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        return get_credential(env_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./banklink.db"

    # Plaid credentials (optional - the plaid provider is skipped without them)
    PLAID_CLIENT_ID: str = ""
    PLAID_SECRET: str = ""
    PLAID_ENVIRONMENT: str = "sandbox"
    PLAID_CLIENT_NAME: str = "Bank Link Ledger"

    # Public base URL that providers call back into (webhooks)
    API_DOMAIN: str = "http://localhost:8000"

    # Tatum blockchain API (optional - for crypto wallet links)
    TATUM_API_KEY: str = ""
    TATUM_BASE_URL: str = "https://api.tatum.io/v3"

    # Webhook idempotency
    WEBHOOK_DEDUP_WINDOW_SECONDS: int = 300

    # Balance ledger: "swallow" | "raise" | "retry"
    BALANCE_LEDGER_FAILURE_POLICY: str = "swallow"
    BALANCE_LEDGER_MAX_RETRIES: int = 2

    # Sync fan-out
    SYNC_MAX_WORKERS: int = 4
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Used when a user has no timezone set
    DEFAULT_TIMEZONE: str = "UTC"

    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    @field_validator("PLAID_ENVIRONMENT", mode="before")
    @classmethod
    def validate_plaid_environment(cls, v: str) -> str:
        """Only sandbox and production are valid Plaid hosts."""
        if v.lower() not in {"sandbox", "production"}:
            raise ValueError(f"PLAID_ENVIRONMENT must be sandbox or production, got {v!r}")
        return v.lower()

    @field_validator("BALANCE_LEDGER_FAILURE_POLICY", mode="before")
    @classmethod
    def validate_failure_policy(cls, v: str) -> str:
        valid = {"swallow", "raise", "retry"}
        if v.lower() not in valid:
            raise ValueError(
                f"BALANCE_LEDGER_FAILURE_POLICY must be one of {valid}, got {v!r}"
            )
        return v.lower()

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
