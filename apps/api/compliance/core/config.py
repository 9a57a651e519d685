"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo.uri_parser import parse_uri


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.03.00"

    # Document store
    MONGO_URI: str = "mongodb://127.0.0.1:27017/punjab_compliance"
    MONGO_DB_NAME: str = ""  # Falls back to the database named in MONGO_URI
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000
    MONGO_USE_TRANSACTIONS: bool = True  # Requires a replica set; disable for standalone dev servers

    # Reference-data cache (categories, violation types, hearing officers)
    CACHE_TTL_SECONDS: int = 30 * 60

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Applications
    TRACKING_ID_PREFIX: str = "PC"
    MIN_CLOSING_REMARKS_LENGTH: int = 10  # adjourn / approve / reject

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def mongo_db_name(self) -> str:
        """Explicit MONGO_DB_NAME, else the database from the URI path."""
        if self.MONGO_DB_NAME:
            return self.MONGO_DB_NAME
        database = parse_uri(self.MONGO_URI).get("database")
        return database or "punjab_compliance"


settings = Settings()
