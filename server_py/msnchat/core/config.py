from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List


class Settings(BaseSettings):
    # Project
    PROJECT_NAME: str = "MSN Chat API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"

    # Server
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 4001
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Хранилища в порядке опроса: memory, sql, supabase, redis (через запятую)
    STORE_BACKENDS: str = "memory"
    STORE_TIMEOUT_SECONDS: float = 2.0

    # Database
    DATABASE_URL: str = f"sqlite+aiosqlite:///{DATA_DIR}/chat.db"

    # Supabase (PostgREST)
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_USE_RPC: bool = False

    # Redis
    REDIS_URL: str = ""

    # Retention
    MESSAGES_READ_LIMIT: int = 100
    MESSAGES_RETAIN_LIMIT: int = 500
    TYPING_STALE_SECONDS: float = 10.0

    # Rate limiting: memory | redis
    RATE_LIMIT_WINDOW_SECONDS: float = 10.0
    RATE_LIMIT_BACKEND: str = "memory"

    # Chat defaults
    DEFAULT_ROOM: str = "lobby"
    DEFAULT_USER_COLOR: str = "#000000"
    ROOMS: List[str] = ["lobby", "bnb", "usa", "dev"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def store_backends(self) -> List[str]:
        return [name.strip().lower() for name in self.STORE_BACKENDS.split(",") if name.strip()]


# Создаем экземпляр настроек
settings = Settings()
