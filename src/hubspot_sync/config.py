"""
Configuration management for the HubSpot sync worker.

Loads settings from environment variables (and a project-root .env file)
with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    # HubSpot OAuth app
    HUBSPOT_CID: str = ''
    HUBSPOT_CS: str = ''
    HUBSPOT_API_BASE_URL: str = 'https://api.hubapi.com'
    HUBSPOT_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0, le=300)

    # Tenant store
    DATABASE_URL: str = ''
    PERSIST_ACCOUNTS: bool = True

    # Downstream sink
    SINK_URL: str = ''
    SINK_API_KEY: str = ''
    SINK_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0, le=300)

    # Sync engine
    ACTION_BATCH_SIZE: int = Field(default=2000, ge=1)
    MAX_RETRY_ATTEMPTS: int = Field(default=4, ge=1, le=10)
    RETRY_BASE_SECONDS: float = Field(default=5.0, ge=0)

    # Logging
    LOG_LEVEL: str = 'INFO'
    LOG_JSON: bool = False

    def validate_required(self) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not self.HUBSPOT_CID:
            missing.append('HUBSPOT_CID')
        if not self.HUBSPOT_CS:
            missing.append('HUBSPOT_CS')
        if not self.DATABASE_URL:
            missing.append('DATABASE_URL')
        if not self.SINK_URL:
            missing.append('SINK_URL')
        return missing


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
