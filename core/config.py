"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Known limitations (static encryption passphrases) surfaced, not hidden
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from core.security import MAX_KDF_ITERATIONS, MIN_KDF_ITERATIONS

# Load environment variables from .env file
load_dotenv()

# Static passphrases shared by every installation. Per-user key derivation is
# not implemented; validate_config() warns while these are in use.
DEFAULT_CREDENTIALS_STORAGE_KEY = "health-ai-secure-key-2024"
DEFAULT_MEDICATIONS_STORAGE_KEY = "health-ai-medication-key-2024"
DEFAULT_BACKUP_KEY = "healthai-backup-encryption-key-2024"


class StorageConfig(BaseModel):
    """Local keyed storage configuration."""

    backend: Literal["memory", "file"] = Field(
        default="file", description="Where the two storage namespaces live"
    )
    data_dir: str = Field(default="./data", description="Directory for file-backed storage")
    credentials_encryption_key: str | None = Field(
        default=DEFAULT_CREDENTIALS_STORAGE_KEY,
        description="Passphrase for the credentials namespace file (None stores plaintext)",
    )
    medications_encryption_key: str | None = Field(
        default=DEFAULT_MEDICATIONS_STORAGE_KEY,
        description="Passphrase for the medications namespace file (None stores plaintext)",
    )


class SecurityConfig(BaseModel):
    """Password hashing and key derivation cost factors."""

    bcrypt_rounds: int = Field(default=12, ge=4, le=31, description="bcrypt cost factor")
    min_password_length: int = Field(default=6, gt=0, description="Minimum password length")
    kdf_iterations: int = Field(
        default=390_000,
        ge=MIN_KDF_ITERATIONS,
        le=MAX_KDF_ITERATIONS,
        description="PBKDF2 iterations for passphrase-derived keys",
    )


class BackupConfig(BaseModel):
    """Encrypted cloud backup configuration."""

    filename: str = Field(default="HealthAI_Backup.json", description="Remote backup file name")
    format_version: str = Field(default="1.0", description="Snapshot version tag")
    encryption_key: str = Field(
        default=DEFAULT_BACKUP_KEY, min_length=1, description="Process-wide backup passphrase"
    )
    cloud_dir: str = Field(default="./cloud", description="Directory used as the cloud drive")
    timeout_seconds: float = Field(
        default=60.0, gt=0.0, description="Upper bound for a whole backup or restore"
    )

    @field_validator("filename")
    def validate_filename(cls, v: str) -> str:
        if not v.strip() or "/" in v or "\\" in v:
            raise ValueError("backup filename must be a bare file name")
        return v


class DrugLabelConfig(BaseModel):
    """External drug-label source (openFDA) configuration."""

    base_url: str = Field(
        default="https://api.fda.gov/drug/label.json", description="Label search endpoint"
    )
    api_key: str | None = Field(default=None, description="openFDA API key (optional)")
    result_limit: int = Field(default=5, gt=0, le=100, description="Labels fetched per lookup")
    timeout_seconds: float = Field(default=15.0, gt=0.0, description="Timeout per lookup")
    max_concurrent_lookups: int = Field(
        default=5, gt=0, description="Maximum number of label lookups in flight"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    storage: StorageConfig = Field(default_factory=StorageConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    drug_labels: DrugLabelConfig = Field(default_factory=DrugLabelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self

    @property
    def uses_default_backup_key(self) -> bool:
        return self.backup.encryption_key == DEFAULT_BACKUP_KEY


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _backend_to_literal(val: str) -> Literal["memory", "file"]:
        return "memory" if val.strip().lower() == "memory" else "file"

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    storage_config = StorageConfig(
        backend=_backend_to_literal(os.getenv("STORAGE_BACKEND", "file")),
        data_dir=os.getenv("STORAGE_DATA_DIR", "./data"),
    )

    security_config = SecurityConfig(
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
        kdf_iterations=int(os.getenv("KDF_ITERATIONS", "390000")),
    )

    backup_config = BackupConfig(
        encryption_key=os.getenv("BACKUP_ENCRYPTION_KEY") or DEFAULT_BACKUP_KEY,
        cloud_dir=os.getenv("BACKUP_CLOUD_DIR", "./cloud"),
        timeout_seconds=float(os.getenv("BACKUP_TIMEOUT_SECONDS", "60.0")),
    )

    drug_label_config = DrugLabelConfig(
        base_url=os.getenv("FDA_API_URL", "https://api.fda.gov/drug/label.json"),
        api_key=os.getenv("FDA_API_KEY") or None,
        timeout_seconds=float(os.getenv("FDA_TIMEOUT_SECONDS", "15.0")),
        max_concurrent_lookups=int(os.getenv("FDA_MAX_CONCURRENT_LOOKUPS", "5")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        storage=storage_config,
        security=security_config,
        backup=backup_config,
        drug_labels=drug_label_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")

        if config.drug_labels.api_key:
            print("openFDA API key configured")

        if config.uses_default_backup_key:
            print(
                "WARNING: cloud backups are encrypted with the built-in static key; "
                "set BACKUP_ENCRYPTION_KEY to use your own passphrase"
            )

    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nSTORAGE")
    print(f"Backend: {config.storage.backend} ({config.storage.data_dir})")
    print(f"bcrypt rounds: {config.security.bcrypt_rounds}")

    print("\nBACKUP")
    print(f"Cloud directory: {config.backup.cloud_dir}")
    print(f"File: {config.backup.filename} (format {config.backup.format_version})")

    print("\nDRUG LABELS")
    print(f"Endpoint: {config.drug_labels.base_url}")
    print(f"Concurrent lookups: {config.drug_labels.max_concurrent_lookups}")


if __name__ == "__main__":
    # Test configuration loading
    validate_config()
    print_config_summary()
