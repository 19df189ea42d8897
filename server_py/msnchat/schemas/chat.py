from __future__ import annotations

import random
import string
import time
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_id(prefix: str) -> str:
    """Идентификатор вида msg_<epoch-ms>_<9 символов base36>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    id: str
    room: str
    username: str
    user_color: str
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TypingIndicator(BaseModel):
    id: str
    room: str
    username: str
    user_color: str
    updated_at: datetime

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    room: Optional[str] = None
    username: Optional[str] = None
    user_color: Optional[str] = None
    message: Optional[str] = None


class TypingUpdate(BaseModel):
    room: Optional[str] = None
    username: Optional[str] = None
    user_color: Optional[str] = None


class MessagePosted(BaseModel):
    success: bool = True
    message: Message


class SuccessResponse(BaseModel):
    success: bool = True


class RoomsResponse(BaseModel):
    rooms: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    ok: bool = True
    backend: Optional[str] = None
