from sqlalchemy.ext.asyncio import AsyncEngine

from msnchat.core.database import Base

# Импортируем модели чтобы они попали в metadata перед созданием таблиц
from msnchat.models import chat_message  # noqa: F401
from msnchat.models import typing_indicator  # noqa: F401


async def create_tables(engine: AsyncEngine) -> None:
    """Создание таблиц messages и typing_indicators, если их еще нет"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
