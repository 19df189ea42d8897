from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from msnchat.core.errors import StoreNotReady, StoreUnavailable
from msnchat.schemas.chat import Message, TypingIndicator, new_id, utcnow
from msnchat.stores.base import ChatStore, stale_cutoff

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Коды PostgREST, означающие что таблицы/функции еще не созданы
NOT_READY_CODES = {"PGRST202", "PGRST204", "PGRST205", "42P01", "42883"}


def _iso(value) -> str:
    return value.isoformat().replace("+00:00", "Z")


def is_not_ready(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    if payload.get("code") in NOT_READY_CODES:
        return True
    message = str(payload.get("message") or "").lower()
    return "schema cache" in message or "does not exist" in message


def _parse(model: Type[ModelT], item: Any) -> ModelT:
    try:
        return model.model_validate(item)
    except ValidationError as exc:
        raise StoreUnavailable(f"supabase returned an invalid {model.__name__}: {exc}") from exc


class SupabaseStore(ChatStore):
    """Хранилище поверх REST-слоя Supabase (PostgREST).

    В режиме RPC запись идет через SQL-функции post_message, upsert_typing,
    trim_messages; чтение всегда через таблицы.
    """

    name = "supabase"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        use_rpc: bool = False,
        timeout: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable = utcnow,
    ) -> None:
        self.use_rpc = use_rpc
        self._clock = clock
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise StoreUnavailable(f"supabase {method} {path} failed: {exc}") from exc

        payload: Any = None
        if resp.content:
            try:
                payload = resp.json()
            except ValueError as exc:
                # HTML от прокси или обрезанный ответ - это не PostgREST
                if resp.status_code < 400:
                    raise StoreUnavailable(f"supabase {method} {path} returned a non-JSON body") from exc
        if resp.status_code >= 400:
            logger.debug("Supabase %s %s -> %s %s", method, path, resp.status_code, payload)
            if is_not_ready(payload):
                raise StoreNotReady(f"supabase schema not ready: {payload}")
            raise StoreUnavailable(f"supabase {method} {path} returned {resp.status_code}")
        # Иногда PostgREST отдает 200 с телом ошибки
        if is_not_ready(payload):
            raise StoreNotReady(f"supabase schema not ready: {payload}")
        return payload

    @staticmethod
    def _rows(op: str, payload: Any) -> List[Any]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise StoreUnavailable(f"supabase {op} expected a list, got {type(payload).__name__}")
        return payload

    @staticmethod
    def _single_row(op: str, payload: Any) -> Any:
        # return=representation и RPC отдают строку или список из одной строки
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not payload:
            raise StoreUnavailable(f"supabase {op} returned no row")
        return payload

    async def append(self, room: str, username: str, user_color: str, text: str) -> Message:
        row = {
            "id": new_id("msg"),
            "room": room,
            "username": username,
            "user_color": user_color,
            "message": text,
            "created_at": self._clock().isoformat(),
        }
        if self.use_rpc:
            payload = await self._request(
                "POST",
                "/rpc/post_message",
                json={"p_room": room, "p_username": username, "p_user_color": user_color, "p_message": text},
            )
        else:
            payload = await self._request("POST", "/messages", json=row, prefer="return=representation")
        return _parse(Message, self._single_row("append", payload))

    async def recent(self, room: str, limit: int) -> List[Message]:
        if limit <= 0:
            return []
        payload = await self._request(
            "GET",
            "/messages",
            params={"select": "*", "room": f"eq.{room}", "order": "created_at.desc", "limit": str(limit)},
        )
        messages = [_parse(Message, item) for item in self._rows("recent", payload)]
        messages.reverse()
        return messages

    async def trim(self, room: str, max_retain: int) -> int:
        if self.use_rpc:
            payload = await self._request(
                "POST", "/rpc/trim_messages", json={"p_room": room, "p_max_retain": max_retain}
            )
            return int(payload or 0)
        overflow = await self._request(
            "GET",
            "/messages",
            params={
                "select": "id",
                "room": f"eq.{room}",
                "order": "created_at.desc",
                "offset": str(max_retain),
            },
        )
        ids = [item["id"] for item in overflow or []]
        if not ids:
            return 0
        await self._request("DELETE", "/messages", params={"id": f"in.({','.join(ids)})"})
        return len(ids)

    async def heartbeat_typing(self, room: str, username: str, user_color: str) -> TypingIndicator:
        row = {
            "id": new_id("typing"),
            "room": room,
            "username": username,
            "user_color": user_color,
            "updated_at": self._clock().isoformat(),
        }
        if self.use_rpc:
            payload = await self._request(
                "POST",
                "/rpc/upsert_typing",
                json={"p_room": room, "p_username": username, "p_user_color": user_color},
            )
            # Функция возвращает сохраненную строку: id и updated_at берем из БД
            return _parse(TypingIndicator, self._single_row("heartbeat_typing", payload))
        else:
            await self._request(
                "POST",
                "/typing_indicators",
                params={"on_conflict": "room,username"},
                json=row,
                prefer="resolution=merge-duplicates",
            )
        return TypingIndicator.model_validate(row)

    async def list_typing(self, room: str, stale_after: float) -> List[TypingIndicator]:
        cutoff = _iso(stale_cutoff(self._clock(), stale_after))
        await self._request("DELETE", "/typing_indicators", params={"updated_at": f"lt.{cutoff}"})
        payload = await self._request(
            "GET",
            "/typing_indicators",
            params={"select": "*", "room": f"eq.{room}", "updated_at": f"gte.{cutoff}"},
        )
        return [_parse(TypingIndicator, item) for item in self._rows("list_typing", payload)]

    async def remove_typing(self, room: str, username: str) -> None:
        await self._request(
            "DELETE",
            "/typing_indicators",
            params={"room": f"eq.{room}", "username": f"eq.{username}"},
        )

    async def prune_typing(self, stale_after: float) -> int:
        cutoff = _iso(stale_cutoff(self._clock(), stale_after))
        payload = await self._request(
            "DELETE",
            "/typing_indicators",
            params={"updated_at": f"lt.{cutoff}"},
            prefer="return=representation",
        )
        return len(payload or [])

    async def close(self) -> None:
        await self._client.aclose()
