"""Base configuration settings."""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Conformance engine settings.

    Values are read from ``FHIR_CONFORMANCE_*`` environment variables or a
    ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="FHIR_CONFORMANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json

    # FHIR server under test
    fhir_server_url: str = "http://localhost:8080/fhir"
    request_timeout: float = 30.0
    max_retries: int = Field(default=3, ge=1)
    page_limit: int = Field(
        default=20, ge=1, description="Maximum Bundle pages followed per search"
    )

    # Engine
    max_reference_resolutions: int = Field(default=50, ge=0)
    terminology_dir: Optional[str] = None
    server_profile_validation: bool = Field(
        default=False, description="Validate resources with the server's $validate operation"
    )

    # Session state
    patient_ids: str = ""

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Only accept level names known to the logging module."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Restrict renderer selection to console or json."""
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v

    @property
    def patient_id_list(self) -> List[str]:
        """Patient identifiers split from the comma-separated setting."""
        return [pid.strip() for pid in self.patient_ids.split(",") if pid.strip()]
