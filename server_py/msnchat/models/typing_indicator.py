from __future__ import annotations

from sqlalchemy import Column, DateTime, String, UniqueConstraint

from msnchat.core.database import Base


class TypingIndicatorRow(Base):
    __tablename__ = "typing_indicators"

    id = Column(String(64), primary_key=True)
    room = Column(String(128), nullable=False)
    username = Column(String(128), nullable=False)
    user_color = Column(String(32), nullable=False, default="#000000")
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # Не больше одного индикатора на пару (room, username)
    __table_args__ = (
        UniqueConstraint("room", "username", name="uq_typing_room_username"),
    )
