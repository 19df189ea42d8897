from __future__ import annotations

import logging
from typing import Callable, List

from sqlalchemy import delete, desc, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from msnchat.core.database import make_session_factory
from msnchat.core.errors import StoreUnavailable
from msnchat.models.chat_message import ChatMessage
from msnchat.models.typing_indicator import TypingIndicatorRow
from msnchat.schemas.chat import Message, TypingIndicator, new_id, utcnow
from msnchat.stores.base import ChatStore, as_utc, stale_cutoff

logger = logging.getLogger(__name__)


def _to_message(row: ChatMessage) -> Message:
    return Message(
        id=row.id,
        room=row.room,
        username=row.username,
        user_color=row.user_color,
        message=row.message,
        created_at=as_utc(row.created_at),
    )


def _to_indicator(row: TypingIndicatorRow) -> TypingIndicator:
    return TypingIndicator(
        id=row.id,
        room=row.room,
        username=row.username,
        user_color=row.user_color,
        updated_at=as_utc(row.updated_at),
    )


class SQLStore(ChatStore):
    """Реляционное хранилище (Postgres через asyncpg или SQLite через aiosqlite)."""

    name = "sql"

    def __init__(self, engine: AsyncEngine, clock: Callable = utcnow) -> None:
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        self._clock = clock

    def _insert(self):
        if self.engine.dialect.name == "postgresql":
            return pg_insert(TypingIndicatorRow)
        return sqlite_insert(TypingIndicatorRow)

    async def append(self, room: str, username: str, user_color: str, text: str) -> Message:
        row = ChatMessage(
            id=new_id("msg"),
            room=room,
            username=username,
            user_color=user_color,
            message=text,
            created_at=self._clock(),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"sql append failed: {exc}") from exc
        return _to_message(row)

    async def recent(self, room: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.room == room)
            .order_by(desc(ChatMessage.created_at), desc(ChatMessage.id))
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = list(result.scalars())
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"sql recent failed: {exc}") from exc
        rows.reverse()
        return [_to_message(row) for row in rows]

    async def trim(self, room: str, max_retain: int) -> int:
        count_stmt = select(func.count()).select_from(ChatMessage).where(ChatMessage.room == room)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    total = (await session.execute(count_stmt)).scalar_one()
                    if total <= max_retain:
                        return 0
                    # id сообщений, которые не входят в последние max_retain
                    ids = list((await session.execute(
                        select(ChatMessage.id)
                        .where(ChatMessage.room == room)
                        .order_by(desc(ChatMessage.created_at), desc(ChatMessage.id))
                        .offset(max_retain)
                    )).scalars())
                    if ids:
                        await session.execute(delete(ChatMessage).where(ChatMessage.id.in_(ids)))
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"sql trim failed: {exc}") from exc
        logger.debug("Trimmed %d messages in room %s", len(ids), room)
        return len(ids)

    async def heartbeat_typing(self, room: str, username: str, user_color: str) -> TypingIndicator:
        now = self._clock()
        indicator_id = new_id("typing")
        stmt = self._insert().values(
            id=indicator_id,
            room=room,
            username=username,
            user_color=user_color,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["room", "username"],
            set_={"id": indicator_id, "user_color": user_color, "updated_at": now},
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"sql typing upsert failed: {exc}") from exc
        return TypingIndicator(
            id=indicator_id, room=room, username=username, user_color=user_color, updated_at=now
        )

    async def list_typing(self, room: str, stale_after: float) -> List[TypingIndicator]:
        cutoff = stale_cutoff(self._clock(), stale_after)
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(TypingIndicatorRow).where(TypingIndicatorRow.updated_at < cutoff)
                )
                result = await session.execute(
                    select(TypingIndicatorRow)
                    .where(TypingIndicatorRow.room == room)
                    .where(TypingIndicatorRow.updated_at >= cutoff)
                    .order_by(TypingIndicatorRow.updated_at)
                )
                rows = list(result.scalars())
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"sql typing read failed: {exc}") from exc
        return [_to_indicator(row) for row in rows]

    async def remove_typing(self, room: str, username: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(TypingIndicatorRow)
                    .where(TypingIndicatorRow.room == room)
                    .where(TypingIndicatorRow.username == username)
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"sql typing delete failed: {exc}") from exc

    async def prune_typing(self, stale_after: float) -> int:
        cutoff = stale_cutoff(self._clock(), stale_after)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(TypingIndicatorRow).where(TypingIndicatorRow.updated_at < cutoff)
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(f"sql typing prune failed: {exc}") from exc
        return result.rowcount or 0

    async def close(self) -> None:
        await self.engine.dispose()
