"""Turn ActivityRecords into canonical playback sessions.

For each record the reconciler derives the session columns (dates, duration,
series/episode names, completion, play method), looks up any session already
stored under the same composite key and decides whether to create it, improve
the stored one, or leave the stored one alone.
"""

from __future__ import annotations

import enum
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from Playlog import models, repos
from Playlog.dates import parse_date
from Playlog.identity import LookupIndex
from Playlog.repos import ExistingSession
from Playlog.schemas import ActivityRecord

log = structlog.get_logger()

TICKS_PER_SECOND = 10_000
COMPLETION_THRESHOLD = 90.0
EPISODE_TYPE = "Episode"

_EPISODE_NAME = re.compile(r"^(.*?) - s\d+e\d+ - (.*)$")

SessionKey = tuple[Any, ...]
_UNSUPPLIED = frozenset({"device_id", "position_ticks"})


class ImporterError(Exception):
    """Base error for the playback importer."""


class RecordError(ImporterError):
    """A single activity record cannot be turned into a session."""


class Outcome(str, enum.Enum):
    created = "created"
    updated = "updated"
    skipped = "skipped"
    errored = "errored"


def coerce_duration(value: Any) -> int:
    """Seconds as a non-negative int; anything unusable counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0) if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip()
        try:
            return max(int(text), 0)
        except ValueError:
            pass
        try:
            return coerce_duration(float(text))
        except ValueError:
            return 0
    return 0


def split_episode_name(item_name: str | None, item_type: str | None) -> tuple[str | None, str | None]:
    """Split ``"<series> - sNNeNN - <episode>"`` into (series, episode).

    Non-episodes and names that do not match return (None, item_name).
    """
    if item_type != EPISODE_TYPE or item_name is None:
        return None, item_name
    m = _EPISODE_NAME.match(item_name)
    if not m:
        return None, item_name
    return m.group(1), m.group(2)


def compute_completion(play_duration: int, runtime_ticks: int | None) -> tuple[float, bool]:
    """(percent_complete, completed); completion needs a positive runtime."""
    if not runtime_ticks or runtime_ticks <= 0:
        return 0.0, False
    percent = play_duration * TICKS_PER_SECOND * 100.0 / runtime_ticks
    return percent, percent > COMPLETION_THRESHOLD


def compute_end_time(start_time: datetime | None, play_duration: int) -> datetime | None:
    if start_time is None or play_duration <= 0:
        return None
    return start_time + timedelta(seconds=play_duration)


def normalize_play_method(value: Any) -> str:
    if not isinstance(value, str) or not value:
        return models.PlayMethod.unknown.value
    if value.startswith("Transcode"):
        return models.PlayMethod.transcode.value
    return value


def _utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def session_key(item_id: str | None, user_id: str | None, start_time: datetime) -> SessionKey:
    if user_id:
        return (item_id, user_id, _utc(start_time))
    return (item_id, _utc(start_time))


def index_existing(sessions: list[ExistingSession]) -> dict[SessionKey, ExistingSession]:
    return {
        session_key(e.item_external_id, e.user_external_id, e.start_time): e for e in sessions
    }


def should_update_session(existing: ExistingSession, attrs: dict[str, Any]) -> bool:
    """Incoming data is better: longer, further along, or newly has an end time.

    Playback Reporting never supplies a position, so the position branch only
    matters for sessions written by other ingestion paths.
    """
    return (
        attrs["play_duration"] > existing.play_duration
        or (attrs.get("position_ticks") or 0) > (existing.position_ticks or 0)
        or (existing.end_time is None and attrs.get("end_time") is not None)
    )


def build_session_attrs(server_id: int, record: ActivityRecord, index: LookupIndex) -> dict[str, Any]:
    """Column values for the session described by ``record``.

    Raises RecordError when the record's date cannot be parsed.
    """
    user_external_id = record.user_id or None
    user = index.user_for(user_external_id)

    start_time = parse_date(record.date_created)
    if start_time is None:
        raise RecordError(f"invalid date: {record.date_created!r}")
    if not record.item_id:
        raise RecordError("missing item id")

    play_duration = coerce_duration(record.play_duration)
    item = index.item_for(record.item_id)

    series_name, episode_name = split_episode_name(record.item_name, record.item_type)
    if record.item_type == EPISODE_TYPE:
        if series_name is None and item is not None:
            series_name = item.series_name
        item_name = episode_name or record.item_name
    else:
        series_name = None
        item_name = record.item_name

    runtime_ticks = (item.runtime_ticks or 0) if item is not None else 0
    percent_complete, completed = compute_completion(play_duration, runtime_ticks)

    return {
        "server_id": server_id,
        "user_id": user.external_id if user is not None else None,
        "user_external_id": user_external_id,
        # Not provided by Playback Reporting
        "device_id": None,
        "device_name": record.device_name or "",
        "client_name": record.client_name,
        "item_external_id": record.item_id,
        "item_name": item_name,
        "series_external_id": item.series_id if item is not None else None,
        "series_name": series_name,
        "season_external_id": item.season_id if item is not None else None,
        "play_duration": play_duration,
        "play_method": normalize_play_method(record.playback_method),
        "start_time": start_time,
        "end_time": compute_end_time(start_time, play_duration),
        # Not provided by Playback Reporting
        "position_ticks": None,
        "runtime_ticks": runtime_ticks,
        "percent_complete": percent_complete,
        "completed": completed,
    }


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    key: SessionKey
    # Snapshot of the session as stored once this decision commits
    session: ExistingSession | None = None


async def reconcile_record(
    s: AsyncSession,
    server_id: int,
    record: ActivityRecord,
    index: LookupIndex,
    existing: Mapping[SessionKey, ExistingSession],
) -> Decision:
    """Create, update or skip the session for one record.

    Writes go through ``s`` without committing; the caller owns the
    transaction and, once it commits, records ``Decision.session`` under
    ``Decision.key`` so a repeated row later in the same chunk is recognized.
    """
    attrs = build_session_attrs(server_id, record, index)
    key = session_key(attrs["item_external_id"], attrs["user_external_id"], attrs["start_time"])
    match = existing.get(key)

    if match is None:
        obj = await repos.insert_session(s, attrs)
        snapshot = ExistingSession(
            id=obj.id,
            item_external_id=obj.item_external_id,
            user_external_id=obj.user_external_id,
            start_time=obj.start_time,
            play_duration=obj.play_duration,
            position_ticks=obj.position_ticks,
            end_time=obj.end_time,
        )
        return Decision(Outcome.created, key, snapshot)

    if should_update_session(match, attrs):
        # Columns this feed never fills must not wipe what another writer stored
        values = {k: v for k, v in attrs.items() if v is not None or k not in _UNSUPPLIED}
        await repos.update_session(s, match.id, values)
        snapshot = replace(
            match,
            play_duration=attrs["play_duration"],
            position_ticks=values.get("position_ticks", match.position_ticks),
            end_time=attrs["end_time"],
        )
        return Decision(Outcome.updated, key, snapshot)

    log.debug("reconciler.skip", session_id=match.id, reason="existing session has better data")
    return Decision(Outcome.skipped, key)
