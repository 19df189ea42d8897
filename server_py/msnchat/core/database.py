from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# Создаем базовый класс для моделей
Base = declarative_base()


def connect_args_for(url: str, seconds: float = 2) -> Dict[str, Any]:
    """Таймаут подключения для Postgres, чтобы недоступная БД не подвешивала запрос."""
    u = make_url(url)
    if u.get_backend_name().startswith("postgresql") and u.get_driver_name() == "asyncpg":
        return {"timeout": seconds}
    return {}


def make_engine(url: str, connect_timeout: float = 2) -> AsyncEngine:
    # Создаем движок SQLAlchemy для асинхронной работы
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args=connect_args_for(url, connect_timeout),
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # Создаем фабрику сессий
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
