from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    PORT: int = 3002
    SUBMISSIONS_DB_PATH: str = "/data/submissions.db"
    CATALOG_DB_PATH: str = "/data/catalog.db"
    STORE_TIMEOUT_SECONDS: float = 10.0
    LOG_LEVEL: str = "info"


settings = Settings()
