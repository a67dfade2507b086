# pocketpet/core/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Pocket Pet"
    API_V1_STR: str = "/api/v1"

    # memory | file | mongo
    STORAGE_BACKEND: str = "file"
    STORAGE_PATH: str = "pocketpet_storage.json"

    MONGO_CONNECTION_URI: str = "mongodb://localhost:27017"
    MONGO_DATABASE_NAME: str = "pocketpet"
    MONGO_COLLECTION_NAME: str = "storage"

    GLOBAL_TICK_INTERVAL_SECONDS: int = 1  # Default value if not in .env
    LOG_LEVEL: str = "INFO"  # Default log level

    model_config = SettingsConfigDict(env_file=".env", extra="ignore",
                                      case_sensitive=False)  # case_sensitive=False for env vars


settings = Settings()
