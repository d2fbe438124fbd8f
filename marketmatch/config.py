import logging
import warnings

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production
    log_level: str = "INFO"

    # Server
    marketplace_host: str = "0.0.0.0"
    marketplace_port: int = 8000

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/marketmatch.db"

    # Auth
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7 days

    # OpenAI (buyer preference extraction)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    extraction_timeout_seconds: float = 15.0
    default_currency: str = "USD"

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Matching
    matching_enabled: bool = True
    match_insert_pause_seconds: float = 0.1  # Throttle between match inserts
    listing_default_expiry_days: int = 30

    # Maintenance loops
    expiry_sweep_interval_seconds: int = 3600  # Hourly
    match_reconcile_interval_seconds: int = 6 * 3600

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

_logger = logging.getLogger("marketmatch.config")
_INSECURE_SECRETS = {
    "dev-secret-change-in-production",
    "change-me-to-a-random-string",
}


def validate_security_posture(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    if cfg.jwt_secret_key in _INSECURE_SECRETS:
        if is_prod:
            raise RuntimeError(
                "FATAL: JWT_SECRET_KEY is set to an insecure default. "
                "Set a strong random secret via the JWT_SECRET_KEY environment variable before deploying to production."
            )
        warnings.warn(
            "JWT_SECRET_KEY is set to the default insecure value. "
            "Set a strong random secret via the JWT_SECRET_KEY environment variable for production.",
            stacklevel=1,
        )

    if cfg.cors_origins == "*":
        if is_prod:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS cannot be '*' in production. "
                "Set explicit trusted origins via the CORS_ORIGINS environment variable."
            )
        _logger.warning(
            "CORS_ORIGINS is set to '*' (allow all). "
            "Configure specific origins for production via the CORS_ORIGINS environment variable."
        )

    if is_prod and cfg.database_url.startswith("sqlite"):
        _logger.warning("DATABASE_URL points at SQLite in production; use postgresql+asyncpg instead.")


validate_security_posture(settings)
