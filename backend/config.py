"""Application configuration using pydantic-settings."""

import os
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
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
    DATABASE_URL: str = "sqlite:///./feedsync.db"

    # Plaid credentials
    PLAID_CLIENT_ID: str = ""
    PLAID_SECRET: str = ""
    PLAID_ENVIRONMENT: str = Field(
        default="sandbox",
        validation_alias=AliasChoices("PLAID_ENVIRONMENT", "PLAID_ENV"),
    )
    PLAID_WEBHOOK_URL: str = ""
    PLAID_WEBHOOK_VERIFICATION: bool = False

    # Symmetric key for stored access tokens. Older deployments used the
    # generic ENCRYPTION_KEY name.
    PLAID_ENCRYPTION_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("PLAID_ENCRYPTION_KEY", "ENCRYPTION_KEY"),
    )

    # Sync behaviour
    SYNC_LOOKBACK_DAYS: int = Field(default=90, ge=1, le=730)
    REFRESH_WAIT_SECONDS: float = Field(default=5.0, ge=0, le=30)

    @field_validator("PLAID_ENVIRONMENT", mode="before")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        """Lowercase and strip the environment selector."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def resolve_environment_secret(self) -> "Settings":
        """Fall back to ``PLAID_SECRET_<ENV>`` when ``PLAID_SECRET`` is unset.

        Deployments that keep one secret per Plaid environment export e.g.
        ``PLAID_SECRET_SANDBOX`` and ``PLAID_SECRET_PRODUCTION`` side by side.
        """
        if not self.PLAID_SECRET:
            env_secret = os.environ.get(f"PLAID_SECRET_{self.PLAID_ENVIRONMENT.upper()}")
            if env_secret:
                self.PLAID_SECRET = env_secret
        return self

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
