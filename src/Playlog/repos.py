# repos.py

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from Playlog import models


@dataclass(frozen=True)
class ExistingSession:
    """Columns of a stored session needed to decide create/update/skip.

    A plain snapshot rather than the ORM row, so it stays readable after the
    owning transaction commits or rolls back.
    """

    id: str
    item_external_id: str
    user_external_id: str | None
    start_time: datetime
    play_duration: int
    position_ticks: int | None
    end_time: datetime | None


async def get_server(s: AsyncSession, server_id: int) -> models.Server | None:
    return await s.get(models.Server, server_id)


async def list_users(s: AsyncSession, server_id: int) -> list[models.User]:
    q = await s.execute(select(models.User).where(models.User.server_id == server_id))
    return list(q.scalars().all())


async def list_items(s: AsyncSession, server_id: int) -> list[models.Item]:
    q = await s.execute(select(models.Item).where(models.Item.server_id == server_id))
    return list(q.scalars().all())


async def find_existing_sessions(
    s: AsyncSession,
    server_id: int,
    *,
    item_ids: Collection[str],
    user_ids: Collection[str] = (),
) -> list[ExistingSession]:
    """Sessions of ``server_id`` for the given items.

    With user ids, the result is narrowed to those users plus anonymous
    sessions, which still need to be matched by (item, start time).
    """
    if not item_ids:
        return []
    ps = models.PlaybackSession
    stmt = select(
        ps.id,
        ps.item_external_id,
        ps.user_external_id,
        ps.start_time,
        ps.play_duration,
        ps.position_ticks,
        ps.end_time,
    ).where(ps.server_id == server_id, ps.item_external_id.in_(list(set(item_ids))))
    if user_ids:
        stmt = stmt.where(
            or_(ps.user_external_id.in_(list(set(user_ids))), ps.user_external_id.is_(None))
        )
    q = await s.execute(stmt)
    return [ExistingSession(*row) for row in q.all()]


async def insert_session(s: AsyncSession, attrs: dict[str, Any]) -> models.PlaybackSession:
    obj = models.PlaybackSession(**attrs)
    s.add(obj)
    await s.flush()
    return obj


async def update_session(s: AsyncSession, session_id: str, attrs: dict[str, Any]) -> None:
    ps = models.PlaybackSession
    await s.execute(update(ps).where(ps.id == session_id).values(**attrs))
