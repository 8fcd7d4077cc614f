"""
BPM Forms Module Configuration.

Manages environment variables specific to the BPM forms module.
Uses prefix BPM_ to avoid conflicts with framework settings.
"""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BpmSettings(BaseSettings):
    """
    BPM forms module settings loaded from environment variables.

    Sensitive values use SecretStr so they never show up in reprs or logs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === BPM Engine API ===
    api_base_url: Annotated[
        str,
        Field(
            default="",
            description="Base URL of the BPM engine API, e.g. https://bpm.example.com/api/",
            validation_alias="BPM_API_BASE_URL",
        ),
    ] = ""

    api_key: Annotated[
        SecretStr,
        Field(
            default=SecretStr(""),
            description="API key sent as X-API-Key",
            validation_alias="BPM_API_KEY",
        ),
    ] = SecretStr("")

    api_secret: Annotated[
        SecretStr,
        Field(
            default=SecretStr(""),
            description="API secret sent as X-API-Secret",
            validation_alias="BPM_API_SECRET",
        ),
    ] = SecretStr("")

    timeout_seconds: Annotated[
        float,
        Field(
            default=30.0,
            description="HTTP timeout for BPM engine and middleware requests",
            validation_alias="BPM_TIMEOUT_SECONDS",
        ),
    ] = 30.0

    environment: Annotated[
        str,
        Field(
            default="TEST",
            description="Environment tag sent with abort-process calls",
            validation_alias="BPM_ENVIRONMENT",
        ),
    ] = "TEST"

    # === BPM Middleware (batch ingestion detail lookups) ===
    middleware_base_url: Annotated[
        str,
        Field(
            default="",
            description="Base URL of the BPM middleware serving /api/bpm/process/{serialNo}",
            validation_alias="BPM_MIDDLEWARE_BASE_URL",
        ),
    ] = ""

    read_bskey: Annotated[
        SecretStr,
        Field(
            default=SecretStr(""),
            description="Pre-shared key the middleware sends with batch pushes",
            validation_alias="BPM_READ_BSKEY",
        ),
    ] = SecretStr("")

    # === Form Codes ===
    form_code_leave: Annotated[
        str,
        Field(default="PI_LEAVE_001", validation_alias="BPM_FORM_CODE_LEAVE"),
    ] = "PI_LEAVE_001"

    form_code_overtime: Annotated[
        str,
        Field(default="PI_OVERTIME_001", validation_alias="BPM_FORM_CODE_OVERTIME"),
    ] = "PI_OVERTIME_001"

    form_code_business_trip: Annotated[
        str,
        Field(default="PI_BUSINESS_TRIP_001", validation_alias="BPM_FORM_CODE_BUSINESS_TRIP"),
    ] = "PI_BUSINESS_TRIP_001"

    form_code_cancel_leave: Annotated[
        str,
        Field(default="PI_CANCEL_LEAVE_001", validation_alias="BPM_FORM_CODE_CANCEL_LEAVE"),
    ] = "PI_CANCEL_LEAVE_001"

    @property
    def is_engine_configured(self) -> bool:
        """Check if the BPM engine base URL is set."""
        return bool(self.api_base_url)

    @property
    def is_middleware_configured(self) -> bool:
        """Check if the middleware base URL is set."""
        return bool(self.middleware_base_url)

    def form_codes(self) -> dict[str, str]:
        """Form code per form type value."""
        return {
            "LEAVE": self.form_code_leave,
            "OVERTIME": self.form_code_overtime,
            "BUSINESS_TRIP": self.form_code_business_trip,
            "CANCEL_LEAVE": self.form_code_cancel_leave,
        }


@lru_cache
def get_bpm_settings() -> BpmSettings:
    """
    Get cached BPM module settings.

    Returns:
        BpmSettings: Settings instance, loaded once.
    """
    return BpmSettings()
