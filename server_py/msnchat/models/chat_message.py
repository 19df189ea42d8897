from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, String, Text

from msnchat.core.database import Base


class ChatMessage(Base):
    __tablename__ = "messages"

    id = Column(String(64), primary_key=True)
    room = Column(String(128), nullable=False, default="lobby")
    username = Column(String(128), nullable=False)
    user_color = Column(String(32), nullable=False, default="#000000")
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_messages_room_created_at", "room", "created_at"),
    )
