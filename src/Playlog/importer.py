"""Playback Reporting importer.

Imports historical playback activity exported by the Jellyfin Playback
Reporting plugin into ``playback_sessions``:

- Payload decoding (JSON array or nine-column TSV)
- Per-chunk lookup of users, items and already-stored sessions
- Per-record create/update/skip with its own short transaction
- Chunk-level retry with exponential backoff on transient storage errors

Imports are long (hundreds of thousands of rows) and share the tables with
the live session sync, so nothing is cached across chunks and no long-held
locks are taken.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable, MutableMapping, Sequence
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.contextvars import bound_contextvars

from Playlog import repos
from Playlog.config import Settings, load_settings
from Playlog.db import is_transient_error, session_scope
from Playlog.decoder import decode
from Playlog.identity import LookupIndex, build_index
from Playlog.importer_context import BatchOutcome, ImportResult
from Playlog.metrics import inc_counter, observe_histogram
from Playlog.reconciler import (
    RecordError,
    SessionKey,
    index_existing,
    reconcile_record,
)
from Playlog.repos import ExistingSession
from Playlog.schemas import ActivityRecord

log = structlog.get_logger()

Sleep = Callable[[float], Awaitable[Any]]


def chunked(records: Sequence[ActivityRecord], size: int) -> list[Sequence[ActivityRecord]]:
    return [records[i : i + size] for i in range(0, len(records), size)]


async def _process_record(
    s: AsyncSession,
    server_id: int,
    record: ActivityRecord,
    index: LookupIndex,
    existing: MutableMapping[SessionKey, ExistingSession],
    timeout: float,
) -> BatchOutcome:
    """Reconcile and commit one record.

    Record-level failures are counted and rolled back alone; transient
    storage errors propagate so the whole chunk is retried.
    """
    try:
        async with asyncio.timeout(timeout):
            decision = await reconcile_record(s, server_id, record, index, existing)
            await s.commit()
    except RecordError as err:
        await s.rollback()
        log.warning("importer.record.invalid", item_id=record.item_id, reason=str(err))
        return BatchOutcome.all_errored(1)
    except Exception as err:
        await s.rollback()
        if is_transient_error(err):
            raise
        log.error("importer.record.error", item_id=record.item_id, exc_info=True)
        return BatchOutcome.all_errored(1)

    if decision.session is not None:
        existing[decision.key] = decision.session
    return BatchOutcome.single(decision.outcome)


async def _process_chunk(
    server_id: int,
    chunk: Sequence[ActivityRecord],
    *,
    timeout: float,
    settled: MutableMapping[int, BatchOutcome],
) -> BatchOutcome:
    """Process the records of ``chunk`` not yet in ``settled``.

    ``settled`` maps a record's position to its outcome once that record has
    committed or failed on its own. A retried attempt skips those positions,
    so rows written before a transient failure keep their first outcome.
    """
    async with session_scope() as s:
        async with asyncio.timeout(timeout):
            index = await build_index(s, server_id)
            found = await repos.find_existing_sessions(
                s,
                server_id,
                item_ids={r.item_id for r in chunk if r.item_id},
                user_ids={r.user_id for r in chunk if r.user_id},
            )
            await s.commit()
        # Detach the lookup rows so a per-record rollback cannot expire them
        s.expunge_all()
        existing = index_existing(found)
        log.debug("importer.batch.preloaded", existing_sessions=len(existing))

        for pos, record in enumerate(chunk):
            if pos in settled:
                continue
            settled[pos] = await _process_record(
                s, server_id, record, index, existing, timeout
            )
        return sum(settled.values(), BatchOutcome())


async def _run_chunk_with_retry(
    server_id: int,
    chunk: Sequence[ActivityRecord],
    *,
    batch_number: int,
    settings: Settings,
    sleep: Sleep,
) -> BatchOutcome:
    max_retries = settings.importer_max_retries
    attempt = 0
    settled: dict[int, BatchOutcome] = {}
    while True:
        try:
            return await _process_chunk(
                server_id,
                chunk,
                timeout=settings.importer_db_timeout_seconds,
                settled=settled,
            )
        except Exception as err:
            if not is_transient_error(err):
                log.error("importer.batch.failed", batch=batch_number, size=len(chunk), exc_info=True)
                inc_counter("importer.batch.failed")
                return BatchOutcome.all_errored(len(chunk))
            if attempt >= max_retries:
                log.error(
                    "importer.batch.retries_exhausted",
                    batch=batch_number,
                    size=len(chunk),
                    attempts=attempt + 1,
                    error=str(err),
                )
                inc_counter("importer.batch.failed")
                return BatchOutcome.all_errored(len(chunk))
            delay = settings.importer_retry_base_seconds * (2**attempt)
            attempt += 1
            log.warning(
                "importer.batch.retry",
                batch=batch_number,
                attempt=attempt,
                max_retries=max_retries,
                delay_seconds=delay,
                settled_records=len(settled),
                error=str(err),
            )
            inc_counter("importer.batch.retry")
            await sleep(delay)


async def run_import(
    server_id: int,
    activities: Sequence[ActivityRecord],
    *,
    settings: Settings | None = None,
    sleep: Sleep = asyncio.sleep,
) -> BatchOutcome:
    """Persist ``activities`` chunk by chunk, in input order."""
    settings = settings or load_settings()
    chunks = chunked(activities, settings.importer_batch_size)
    log.info("importer.batches.start", activities=len(activities), batches=len(chunks))

    total = BatchOutcome()
    for number, chunk in enumerate(chunks, start=1):
        started = time.perf_counter()
        result = await _run_chunk_with_retry(
            server_id, chunk, batch_number=number, settings=settings, sleep=sleep
        )
        observe_histogram("importer.batch.ms", int((time.perf_counter() - started) * 1000))
        for name, value in result.as_dict().items():
            if value:
                inc_counter(f"importer.records.{'errored' if name == 'errors' else name}", value)
        total = total + result
        log.debug("importer.batch.done", batch=number, of=len(chunks), **result.as_dict())

    log.info("importer.batches.done", activities=len(activities), **total.as_dict())
    return total


async def do_import(
    server_id: int,
    data: Any,
    file_type: str = "json",
    *,
    settings: Settings | None = None,
    sleep: Sleep = asyncio.sleep,
) -> ImportResult:
    """Run one complete import; never raises."""
    started = time.perf_counter()

    def _elapsed_ms() -> int:
        return int((time.perf_counter() - started) * 1000)

    with bound_contextvars(server_id=server_id, import_id=uuid.uuid4().hex[:12]):
        try:
            async with session_scope() as s:
                server = await repos.get_server(s, server_id)
                server_name = server.name if server is not None else None
            if server is None:
                log.error("importer.server.not_found")
                return ImportResult(
                    server_id=server_id,
                    status="server_not_found",
                    file_type=file_type,
                    duration_ms=_elapsed_ms(),
                    error=f"server {server_id} not found",
                )
            log.info("importer.server.found", server_name=server_name, file_type=file_type)

            # Row validation is CPU-bound; keep it off the loop the gate and HTTP share
            decoded = await asyncio.to_thread(decode, data, file_type)
            outcome = await run_import(server_id, decoded.records, settings=settings, sleep=sleep)
            result = ImportResult(
                server_id=server_id,
                status="ok",
                outcome=outcome,
                file_type=file_type,
                decoded=len(decoded.records),
                dropped=decoded.dropped,
                duration_ms=_elapsed_ms(),
            )
        except Exception as err:
            log.error("importer.failed", exc_info=True)
            return ImportResult(
                server_id=server_id,
                status="failed",
                file_type=file_type,
                duration_ms=_elapsed_ms(),
                error=repr(err),
            )

        log.info("importer.completed", **result.as_dict())
        return result
