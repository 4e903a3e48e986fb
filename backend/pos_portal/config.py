"""
Configuration settings loaded from environment variables.
"""
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Determine .env file path (backend/.env)
_env_path = Path(__file__).parent.parent / ".env"

# Load .env without clobbering variables already set in the process
load_dotenv(dotenv_path=_env_path, override=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Static retailer configuration (JSON array)
    retailers_config: Optional[str] = Field(
        default=None,
        alias="RETAILERS_CONFIG",
        description=(
            "JSON array of retailer objects with key, name, mall, brand, unit, "
            "envUserVar and envPassVar"
        )
    )

    # External push API
    external_api_url: Optional[str] = Field(
        default=None,
        alias="EXTERNAL_API_URL",
        description="Endpoint receiving PushReceiptShifts submissions"
    )
    external_api_timeout: float = Field(
        default=60.0,
        alias="EXTERNAL_API_TIMEOUT",
        description="HTTP timeout (seconds) for the push API call"
    )

    # Supabase settings
    supabase_url: str = Field(
        default="",
        alias="SUPABASE_URL",
        description="Supabase project URL"
    )
    supabase_anon_key: str = Field(
        default="",
        alias="SUPABASE_ANON_KEY",
        description="Supabase anonymous key"
    )
    supabase_service_role_key: Optional[str] = Field(
        default=None,
        alias="SUPABASE_SERVICE_ROLE_KEY",
        description="Supabase service role key (optional, for server-side writes)"
    )
    receipts_table: str = Field(
        default="pos_receipts",
        alias="RECEIPTS_TABLE",
        description="Table holding persisted receipts for every retailer collection"
    )

    # Business calendar
    business_timezone: str = Field(
        default="Asia/Dubai",
        alias="BUSINESS_TIMEZONE",
        description="IANA timezone used to read human-entered receipt dates (GST)"
    )
    default_shift_hour: int = Field(
        default=9,
        alias="DEFAULT_SHIFT_HOUR",
        description="Hour of day used as the shift-day for manual entries"
    )
    max_paste_rows: int = Field(
        default=50,
        alias="MAX_PASTE_ROWS",
        description="Maximum number of pasted spreadsheet rows accepted per submission"
    )

    # Application settings
    env: str = Field(
        default="local",
        alias="ENV",
        description="Environment (local, staging, production)"
    )
    log_level: str = Field(
        default="info",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    @field_validator("default_shift_hour")
    @classmethod
    def check_shift_hour(cls, v: Any) -> int:
        """Shift hour must be a valid hour of day."""
        if not 0 <= int(v) <= 23:
            raise ValueError("DEFAULT_SHIFT_HOUR must be between 0 and 23")
        return int(v)

    model_config = {
        "env_file": str(_env_path),
        "case_sensitive": False,
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, reading the environment once."""
    return Settings()
