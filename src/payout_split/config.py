"""Configuration management for PayoutSplit."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Session limits. Every field has a default, so no environment is required."""

    model_config = SettingsConfigDict(
        env_prefix="PAYOUT_SPLIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store capacity
    max_recipients: int = Field(default=1000, ge=1)
    max_add_per_call: int = Field(default=100, ge=1)

    # CSV import limits
    max_import_bytes: int = Field(default=1 * MIB, ge=1)  # hard, inside the codec
    max_file_bytes: int = Field(default=2 * MIB, ge=1)  # soft, before decoding
    max_import_rows: int = Field(default=1000, ge=1)

    # Value clamps applied on import
    max_total_amount: float = Field(default=1_000_000_000, ge=0)
    max_fixed_value: float = Field(default=1_000_000_000, ge=0)
    max_percentage_value: float = Field(default=100, ge=0)
    max_share_value: float = Field(default=1_000_000, ge=0)


def load_settings() -> Settings:
    """Load settings, applying any PAYOUT_SPLIT_* overrides."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check PAYOUT_SPLIT_* variables and .env.\n"
            f"Error: {e}"
        ) from e
