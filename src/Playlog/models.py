# models.py

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from Playlog.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlayMethod(str, enum.Enum):
    direct_play = "DirectPlay"
    direct_stream = "DirectStream"
    transcode = "Transcode"
    unknown = "Unknown"


class Server(Base):
    """A media-server instance; the target system of an import."""

    __tablename__ = "servers"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("server_id", "external_id", name="ux_users_server_external"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(ForeignKey("servers.id", ondelete="CASCADE"), index=True)
    external_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Item(Base):
    """Catalog entry as kept fresh by the library sync; read-only for the importer."""

    __tablename__ = "items"
    __table_args__ = (UniqueConstraint("server_id", "external_id", name="ux_items_server_external"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(ForeignKey("servers.id", ondelete="CASCADE"), index=True)
    external_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Catalog tick unit (10,000 per second)
    runtime_ticks: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    series_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    series_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    season_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class PlaybackSession(Base):
    __tablename__ = "playback_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    server_id: Mapped[int] = mapped_column(ForeignKey("servers.id", ondelete="CASCADE"), index=True)
    # Resolved canonical user (external id) when the user table knows them
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Raw upstream user id; NULL for anonymous sessions
    user_external_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    item_external_id: Mapped[str] = mapped_column(String(64))
    item_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    series_external_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    series_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    season_external_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    play_duration: Mapped[int] = mapped_column(Integer, default=0)
    # One of PlayMethod's values, or an unrecognized upstream value kept verbatim
    play_method: Mapped[str] = mapped_column(String(64), default=PlayMethod.unknown.value)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    position_ticks: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    runtime_ticks: Mapped[int] = mapped_column(BigInteger, default=0)
    percent_complete: Mapped[float] = mapped_column(Float, default=0.0)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


Index(
    "ix_playback_sessions_server_item_user_start",
    PlaybackSession.server_id,
    PlaybackSession.item_external_id,
    PlaybackSession.user_external_id,
    PlaybackSession.start_time,
)
