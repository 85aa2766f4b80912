from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Settlement Ledger"
    version: str = "0.1.0"

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DATA_PATH: str = "/tmp"
    APP_DATABASE_DSN: str = "sqlite:////tmp/ledger.db"
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Ledger storage
    LEDGER_STORE_BACKEND: str = "sql"  # "sql" or "json"
    LEDGER_JSON_DIRNAME: str = "ledger"  # directory under APP_DATA_PATH for the json backend
    LEDGER_DEFAULT_ACTOR: str = "system"

    # Idempotency records older than this are purged by the worker
    IDEMPOTENCY_MAX_AGE_HOURS: int = 24

    @property
    def json_store_enabled(self) -> bool:
        return self.LEDGER_STORE_BACKEND.lower() == "json"


settings = Settings()
