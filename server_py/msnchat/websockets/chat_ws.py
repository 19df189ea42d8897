from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


class RoomConnectionManager:
    """Подписчики комнат: room -> набор вебсокетов."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._lookup: Dict[WebSocket, str] = {}
        self._lock = asyncio.Lock()

    async def register(self, room: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._rooms.setdefault(room, set()).add(websocket)
            self._lookup[websocket] = room

    async def unregister(self, websocket: WebSocket) -> None:
        async with self._lock:
            room = self._lookup.pop(websocket, None)
            if room is None:
                return
            conns = self._rooms.get(room)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._rooms.pop(room, None)

    async def _snapshot(self, room: str) -> List[WebSocket]:
        async with self._lock:
            connections = self._rooms.get(room)
            return list(connections) if connections else []

    async def publish(self, room: str, payload: dict) -> None:
        connections = await self._snapshot(room)
        if connections:
            await asyncio.gather(*(self._safe_send(ws, payload) for ws in connections))

    async def _safe_send(self, websocket: WebSocket, message: dict) -> None:
        try:
            await websocket.send_json(message)
        except Exception:  # noqa: BLE001
            await self.unregister(websocket)


@router.websocket("/ws/rooms/{room}")
async def room_websocket(websocket: WebSocket, room: str) -> None:
    manager: RoomConnectionManager = websocket.app.state.room_manager
    chat_service = websocket.app.state.chat_service
    await websocket.accept()
    await manager.register(room, websocket)
    try:
        # Сразу отдаем текущее состояние комнаты
        messages = await chat_service.list_messages(room)
        await websocket.send_json({"type": "history", "data": [m.model_dump(mode="json") for m in messages]})
        while True:
            # Входящие кадры не используются, держим соединение до отключения
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception:  # noqa: BLE001
        logger.exception("Room websocket error in %s", room)
        try:
            await websocket.close(code=1011)
        except Exception:  # noqa: BLE001
            pass
    finally:
        await manager.unregister(websocket)
