"""
Compliance Engine Configuration
Settings for rule extraction, compliance analysis and rule snapshot storage.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sut_compliance.core.enums import SnapshotBackend


class ComplianceSettings(BaseSettings):
    """
    Compliance engine configuration settings.

    Every value can be overridden through an environment variable with the
    ``SUT_`` prefix (for example ``SUT_ANALYSIS_BATCH_SIZE=5000``) or a
    ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="SUT_",  # All compliance settings prefixed with SUT_
    )

    # =========================================================================
    # Analysis Configuration
    # =========================================================================
    ANALYSIS_BATCH_SIZE: int = Field(
        default=2000,
        ge=100,
        le=5000,
        description="Rows evaluated per chunk before progress is reported",
    )
    LOW_CONFIDENCE_THRESHOLD: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Violations from rules below this confidence only need review",
    )
    DEFAULT_INSTITUTION_TIER: int = Field(
        default=2,
        ge=1,
        le=3,
        description="Care tier assumed when the institution tier is unknown",
    )

    # =========================================================================
    # Rule Extraction Configuration
    # =========================================================================
    REGEX_RULE_CONFIDENCE: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Confidence stamped on rules produced by the regex extractor",
    )
    POINT_PRICE_COEFFICIENT: float = Field(
        default=0.593,
        gt=0.0,
        description="TL per point, used when a price list row has no price",
    )

    # =========================================================================
    # Rule Oracle (LLM) Configuration
    # =========================================================================
    ORACLE_ENABLED: bool = Field(
        default=False,
        description="Use the LLM oracle as a second rule extraction source",
    )
    ORACLE_BATCH_SIZE: int = Field(
        default=15,
        ge=1,
        le=50,
        description="Descriptions sent per oracle request",
    )
    ORACLE_BATCH_PAUSE_SECONDS: float = Field(
        default=0.25,
        ge=0.0,
        description="Fixed pause between sequential oracle batches",
    )
    ORACLE_ONLY_SEMANTIC_TEXTS: bool = Field(
        default=True,
        description="Send only descriptions with specialty/tier/negation wording",
    )
    ORACLE_DEFAULT_CONFIDENCE: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Confidence assigned to oracle rules that omit one",
    )
    LLM_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="LiteLLM model identifier used by the oracle",
    )
    LLM_API_KEY: Optional[str] = Field(
        default=None,
        description="API key for the oracle LLM provider",
    )
    LLM_API_BASE: Optional[str] = Field(
        default=None,
        description="Custom API base URL (for self-hosted or proxy endpoints)",
    )
    LLM_TIMEOUT_SECONDS: int = Field(
        default=120,
        description="Maximum time for one oracle request",
    )
    LLM_MAX_TOKENS: int = Field(
        default=4096,
        description="Completion token budget per oracle request",
    )

    # =========================================================================
    # Snapshot Storage Configuration
    # =========================================================================
    SNAPSHOT_BACKEND: SnapshotBackend = Field(
        default=SnapshotBackend.FILE,
        description="Rule snapshot persistence backend",
    )
    SNAPSHOT_DIRECTORY: str = Field(
        default="data/rule_snapshots",
        description="Directory for file based rule snapshots",
    )
    MINIO_ENDPOINT: str = Field(
        default="localhost:9000",
        description="MinIO endpoint (host:port)",
    )
    MINIO_ACCESS_KEY: Optional[str] = Field(
        default=None,
        description="MinIO access key",
    )
    MINIO_SECRET_KEY: Optional[str] = Field(
        default=None,
        description="MinIO secret key",
    )
    MINIO_SECURE: bool = Field(
        default=False,
        description="Use TLS for MinIO",
    )
    MINIO_BUCKET: str = Field(
        default="rule-snapshots",
        description="Bucket holding rule snapshots",
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    LOG_FILE: Optional[str] = Field(
        default=None,
        description="Optional log file path",
    )
    JSON_LOGS: bool = Field(
        default=False,
        description="Serialize log records as JSON",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# Singleton instance
_compliance_settings: Optional[ComplianceSettings] = None


def get_compliance_settings() -> ComplianceSettings:
    """
    Get cached compliance settings instance.

    Returns:
        ComplianceSettings instance
    """
    global _compliance_settings
    if _compliance_settings is None:
        _compliance_settings = ComplianceSettings()
    return _compliance_settings


def reset_compliance_settings() -> None:
    """Drop the cached settings (for testing)."""
    global _compliance_settings
    _compliance_settings = None
