"""
Centralized application configuration implementing the 12-Factor App methodology.
Quote engine constants are overridable through environment variables.
"""
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Immutable configuration schema backed by environment variables."""

    APP_NAME: str = "LoanQuote"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Snapshot persistence (SQLite locally, PostgreSQL in production)
    DATABASE_URL: str = "sqlite:///./loanquote.db"

    LOG_LEVEL: str = "INFO"

    # Daily coefficient model
    DAYS_PER_MONTH: int = 30
    DEFAULT_GRACE_DAYS: int = 30

    # Offer presentation
    MAX_VISIBLE_OFFERS: int = 3
    DEFAULT_TERM_POOL: List[int] = [48, 60, 72, 84, 96]

    # Snapshot schema versions
    SIMULATION_SNAPSHOT_VERSION: str = "2025-01"
    PROPOSAL_SNAPSHOT_VERSION: str = "2024-11"
    DEAL_SNAPSHOT_VERSION: str = "2024-11"
    DEFAULT_PDF_STATUS: str = "pending"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
