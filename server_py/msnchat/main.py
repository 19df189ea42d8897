from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from msnchat.api.v1.api import api_router
from msnchat.core.config import Settings, settings as default_settings
from msnchat.core.errors import register_exception_handlers
from msnchat.core.logging import setup_logging
from msnchat.services.chat import ChatService
from msnchat.services.rate_limiter import RateLimiter, build_rate_limiter
from msnchat.stores.base import ChatStore
from msnchat.stores.factory import build_store, init_store
from msnchat.websockets.chat_ws import RoomConnectionManager, router as chat_ws_router


def create_app(
    settings: Settings = default_settings,
    store: Optional[ChatStore] = None,
    limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    # Хранилище создается один раз и живет все время работы процесса
    store = store or build_store(settings)
    limiter = limiter or build_rate_limiter(settings)
    room_manager = RoomConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_store(store)
        yield
        await store.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )
    app.state.room_manager = room_manager
    app.state.chat_service = ChatService(store, limiter, notifier=room_manager, settings=settings)

    # Настройка CORS
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    # Подключаем роутеры API v1
    app.include_router(api_router, prefix=settings.API_V1_STR)

    # Подключаем роутеры БЕЗ префикса для обратной совместимости
    app.include_router(api_router, prefix="")

    # Вебсокеты для подписки на комнаты
    app.include_router(chat_ws_router)
    return app


setup_logging(default_settings.LOG_LEVEL)
app = create_app()
