from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from sqlalchemy.engine import make_url

from msnchat.core.config import Settings
from msnchat.core.database import make_engine
from msnchat.stores.base import ChatStore
from msnchat.stores.fallback import FallbackStore
from msnchat.stores.memory_store import MemoryStore

logger = logging.getLogger(__name__)


def _make_backend(name: str, settings: Settings) -> ChatStore:
    if name == "memory":
        return MemoryStore()
    if name in ("sql", "postgres", "sqlite"):
        from msnchat.stores.sql_store import SQLStore

        url = make_url(settings.DATABASE_URL)
        if url.get_backend_name() == "sqlite" and url.database:
            # Гарантируем наличие директории для файла базы данных
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return SQLStore(make_engine(settings.DATABASE_URL, settings.STORE_TIMEOUT_SECONDS))
    if name == "supabase":
        from msnchat.stores.supabase_store import SupabaseStore

        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase store")
        return SupabaseStore(
            settings.SUPABASE_URL,
            settings.SUPABASE_KEY,
            use_rpc=settings.SUPABASE_USE_RPC,
            timeout=settings.STORE_TIMEOUT_SECONDS,
        )
    if name == "redis":
        from msnchat.stores.redis_store import RedisStore

        if not settings.REDIS_URL:
            raise ValueError("REDIS_URL is required for the redis store")
        return RedisStore.from_url(
            settings.REDIS_URL,
            timeout=settings.STORE_TIMEOUT_SECONDS,
            typing_ttl=settings.TYPING_STALE_SECONDS,
        )
    raise ValueError(f"Unknown store backend: {name}")


def build_store(settings: Settings) -> FallbackStore:
    """Собирает цепочку хранилищ из STORE_BACKENDS.

    Если в списке нет memory, она добавляется последней, чтобы чат
    продолжал работать при падении всех внешних хранилищ.
    """
    names = settings.store_backends or ["memory"]
    if "memory" not in names:
        names = names + ["memory"]
    stores: List[ChatStore] = [_make_backend(name, settings) for name in names]
    logger.info("Store chain: %s", " -> ".join(store.name for store in stores))
    return FallbackStore(stores, timeout=settings.STORE_TIMEOUT_SECONDS)


async def init_store(store: ChatStore) -> None:
    """Создает таблицы для SQL-хранилищ в цепочке; недоступная БД не мешает старту."""
    from msnchat.core.init_db import create_tables
    from msnchat.stores.sql_store import SQLStore

    stores = store.stores if isinstance(store, FallbackStore) else [store]
    for backend in stores:
        if not isinstance(backend, SQLStore):
            continue
        try:
            await create_tables(backend.engine)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not create chat tables, %s will fall back: %s", backend.name, exc)
