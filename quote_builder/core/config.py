from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # Quote
    DEFAULT_BASE_PRICE: int = 1200
    TOTAL_STEPS: int = 5
    MAX_HISTORY_SIZE: int = 50

    # Persistence
    STORAGE_PROVIDER: str = "memory"  # "memory" | "json"
    STORAGE_PATH: str = "data/quote_state.json"
    PERSIST_DEBOUNCE_SECONDS: float = 1.0
    PERSIST_MAX_AGE_SECONDS: float = 24 * 60 * 60

    # Middleware policies
    THROTTLE_CALCULATE_PRICE_SECONDS: float = 0.5
    THROTTLE_UPDATE_TOTAL_PRICE_SECONDS: float = 0.1
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_DELAY_SECONDS: float = 1.0
    CACHE_TTL_SECONDS: float = 300.0
    BATCH_ENABLED: bool = False
    BATCH_DELAY_SECONDS: float = 0.016
    ERROR_RECOVERY_MAX_ERRORS: int = 10
    ERROR_RECOVERY_WINDOW_SECONDS: float = 60.0
    PERFORMANCE_ALERT_MS: float = 100.0
    SLOW_ACTION_MS: float = 16.0
    ANALYTICS_ENABLED: bool = True

    # Cross-tab sync
    SYNC_ENABLED: bool = False
    SYNC_CHANNEL: str = "quote-state-sync"

    # Catalog
    CATALOG_URL: str | None = None
    CATALOG_TIMEOUT_SECONDS: float = 10.0

    # HTTP surface
    DISPATCH_TIMEOUT_SECONDS: float = 10.0


settings = Settings()
