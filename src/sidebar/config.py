"""Sidebar configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    """Sidebar settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CRM backend
    CRM_API_KEY: str = ""
    CRM_BASE_URL: str = "https://api.attio.com/v2"
    CRM_TIMEOUT_SECONDS: float = 30.0

    # Object identifiers (api slug or object id)
    CRM_PEOPLE_OBJECT: str = "people"
    CRM_COMPANIES_OBJECT: str = "companies"
    CRM_DEALS_OBJECT: str = "deals"

    # Bulk collection paging
    CRM_PAGE_SIZE: int = 500
    CRM_MAX_RECORDS: int = 2000

    # Cache time-to-live per collection
    COMPANIES_CACHE_TTL_SECONDS: float = 300.0
    DEAL_STAGES_CACHE_TTL_SECONDS: float = 600.0
    DEALS_CACHE_TTL_SECONDS: float = 30.0

    # Participant extraction
    INTERNAL_EMAIL_DOMAINS: str = ""  # Comma separated, e.g. "acme.com,acme.io"

    # Deal display
    DEFAULT_CURRENCY: str = "USD"
    BILLED_OPTION_IDS: str = ""  # Workspace-specific select option ids
    PARTIAL_BILLING_OPTION_IDS: str = ""

    def get_internal_domains(self) -> list[str]:
        """Return configured internal email domains, lowercased, without a leading @."""
        return [domain.lower().lstrip("@") for domain in _split_csv(self.INTERNAL_EMAIL_DOMAINS)]

    def get_billed_option_ids(self) -> list[str]:
        """Return option ids that mark a deal as fully billed."""
        return _split_csv(self.BILLED_OPTION_IDS)

    def get_partial_billing_option_ids(self) -> list[str]:
        """Return option ids that mark a deal as partially billed."""
        return _split_csv(self.PARTIAL_BILLING_OPTION_IDS)


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
