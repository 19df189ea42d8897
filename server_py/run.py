import sys
from pathlib import Path

# Добавляем корневую директорию проекта в PYTHONPATH
sys.path.append(str(Path(__file__).resolve().parent))

import uvicorn
from msnchat.core.config import settings
from msnchat.core.logging import setup_logging
import asyncio

# Для Windows: используем SelectorEventLoop вместо ProactorEventLoop
import platform
if platform.system() == 'Windows':
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL)

    # Таблицы для SQL-хранилища создаются при старте приложения (lifespan)
    # Важно: reload=True игнорирует host, поэтому используем reload=False для сетевого доступа
    uvicorn.run(
        "msnchat.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=False  # Отключаем reload чтобы host работал правильно
    )
