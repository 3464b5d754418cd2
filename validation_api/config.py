"""
Configuration settings for the Dataset Validation API Service.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    app_name: str = "Dataset Validation API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./dataset_validation.db"

    # Consensus Configuration
    consensus_threshold: int = Field(default=2, gt=0)  # Finalize when matching votes exceed this
    reward_amount: int = Field(default=1, ge=0)        # Points per contributor per finalized record

    # Vote admission policy
    accept_votes_on_finalized: bool = True  # Keep the ledger complete after finalization
    one_vote_per_user: bool = False         # Reject repeat votes by the same voter on a record

    # Reconciliation sweep
    reconcile_interval_minutes: int = 10
    scheduler_enabled: bool = False  # Start the sweep with the API process

    # API Security
    api_key: Optional[str] = None  # Optional API key for admin endpoints
    allowed_origins: str = "http://localhost:8000,http://localhost:3000"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "DV_"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
