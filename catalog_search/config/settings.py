"""
Search Settings
Runtime configuration for the search layer, loaded from environment and .env.
"""

import logging
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SearchSettings(BaseSettings):
    """
    Search layer configuration settings.

    Load from environment variables with SEARCH_ prefix aliases.
    """

    # Index
    index_name: str = Field(default="products", alias="SEARCH_INDEX_NAME")

    # NLP
    intent_confidence_threshold: float = Field(
        default=0.6, ge=0.0, le=1.0, alias="SEARCH_INTENT_CONFIDENCE_THRESHOLD"
    )
    refresh_dictionaries_on_startup: bool = Field(
        default=True, alias="SEARCH_REFRESH_DICTIONARIES"
    )

    # Relevance
    default_scoring_profile: str = Field(default="intent", alias="SEARCH_DEFAULT_PROFILE")

    # Pagination
    default_page_size: int = Field(default=20, ge=1, alias="SEARCH_DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(default=100, ge=1, alias="SEARCH_MAX_PAGE_SIZE")

    # Experiments
    default_ab_test_id: Optional[str] = Field(default=None, alias="SEARCH_AB_TEST_ID")
    enable_default_ab_tests: bool = Field(default=True, alias="SEARCH_ENABLE_DEFAULT_AB_TESTS")
    ab_tests_path: Optional[str] = Field(default=None, alias="SEARCH_AB_TESTS_PATH")

    # User preference cache
    preference_cache_ttl_seconds: int = Field(
        default=300, ge=0, alias="SEARCH_PREFERENCE_CACHE_TTL"
    )  # 5 min
    preference_cache_max_entries: int = Field(
        default=10000, ge=1, alias="SEARCH_PREFERENCE_CACHE_MAX_ENTRIES"
    )
    preference_cache_backend: Literal["memory", "redis"] = Field(
        default="memory", alias="SEARCH_PREFERENCE_CACHE_BACKEND"
    )

    # Redis settings
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=2, alias="REDIS_DB")
    redis_password: Optional[str] = Field(default=None, alias="REDIS_PASSWORD")

    # Logging
    log_level: str = Field(default="INFO", alias="SEARCH_LOG_LEVEL")
    log_format: str = Field(default=LOG_FORMAT, alias="SEARCH_LOG_FORMAT")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Upper-case and check the log level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields in .env file
        validate_default=True,
        populate_by_name=True,  # Allow using both field name and alias
    )


# Global settings instance
_settings: Optional[SearchSettings] = None


def get_settings() -> SearchSettings:
    """Get global search settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = SearchSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None


def configure_logging(settings: Optional[SearchSettings] = None) -> None:
    """
    Configure root logging from settings.

    Args:
        settings: Settings to read level and format from (defaults to global)
    """
    settings = settings or get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level), format=settings.log_format)
