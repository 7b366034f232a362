from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "PlantFlow"
    APP_PORT: int = 9300
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "plantflow"
    POSTGRES_PORT: int = 5432
    DATABASE_URI: Optional[str] = None  # Full override, e.g. sqlite:// for tests
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Inventory
    DEFAULT_WAREHOUSE: str = "MAIN STORE"
    ALLOW_NEGATIVE_STOCK: bool = True

    # Notification outbox
    OUTBOX_ENABLED: bool = True
    OUTBOX_POLL_SECONDS: int = 30
    OUTBOX_MAX_ATTEMPTS: int = 5
    NOTIFICATION_SENDER: str = "dispatch@plantflow.local"

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URI:
            return self.DATABASE_URI
        return f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    class Config:
        env_file = ".env"
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
