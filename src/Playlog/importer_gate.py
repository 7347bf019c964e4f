"""Process-wide single-flight admission for playback imports.

At most one import runs at a time across the whole service. A request that
arrives while another import is running is dropped with a log line, not
queued. The worker is a detached asyncio task; its done-callback releases the
gate whether the import finished, failed or crashed.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from Playlog.decoder import estimate_activity_count
from Playlog.importer import do_import
from Playlog.importer_context import ImportResult
from Playlog.metrics import inc_counter

log = structlog.get_logger()

Runner = Callable[[int, Any, str], Awaitable[ImportResult]]


class ImportGate:
    def __init__(self, runner: Runner = do_import) -> None:
        self._runner = runner
        # Guards _running/_active_server_id; held only for plain assignments
        self._state_lock = threading.Lock()
        self._running = False
        self._active_server_id: int | None = None
        self._task: asyncio.Task[ImportResult] | None = None
        self.last_result: ImportResult | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active_server_id(self) -> int | None:
        return self._active_server_id

    def _acquire(self, server_id: int) -> tuple[bool, int | None]:
        """(acquired, server id holding the gate), read under one lock hold."""
        with self._state_lock:
            if self._running:
                return False, self._active_server_id
            self._running = True
            self._active_server_id = server_id
            return True, server_id

    def try_acquire(self, server_id: int) -> bool:
        return self._acquire(server_id)[0]

    def release(self) -> None:
        with self._state_lock:
            self._running = False
            self._active_server_id = None

    async def submit(self, server_id: int, data: Any, file_type: str = "json") -> bool:
        """Start an import in the background; False if one is already running."""
        acquired, holder = self._acquire(server_id)
        if not acquired:
            log.info("gate.import.rejected", server_id=server_id, active_server_id=holder)
            inc_counter("gate.rejected")
            return False

        log.info(
            "gate.import.accepted",
            server_id=server_id,
            file_type=file_type,
            estimated_activities=estimate_activity_count(data, file_type),
            data_size=len(data) if isinstance(data, str | bytes | bytearray) else None,
        )
        inc_counter("gate.accepted")
        try:
            task = asyncio.create_task(
                self._runner(server_id, data, file_type), name=f"playback-import-{server_id}"
            )
        except BaseException:
            self.release()
            raise
        self._task = task
        task.add_done_callback(lambda t: self._on_worker_done(t, server_id))
        return True

    def _on_worker_done(self, task: asyncio.Task[ImportResult], server_id: int) -> None:
        try:
            if task.cancelled():
                log.error("gate.import.cancelled", server_id=server_id)
                inc_counter("gate.crashed")
                result = ImportResult(server_id=server_id, status="failed", error="cancelled")
            elif (exc := task.exception()) is not None:
                log.error("gate.import.crashed", server_id=server_id, exc_info=exc)
                inc_counter("gate.crashed")
                result = ImportResult(server_id=server_id, status="failed", error=repr(exc))
            else:
                result = task.result()
                log.info("gate.import.completed", **result.as_dict())
            self.last_result = result
        finally:
            self.release()

    async def wait_idle(self) -> ImportResult | None:
        """Wait for the current worker (if any) and return the last result."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return self.last_result

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "active_server_id": self._active_server_id,
            "last_result": self.last_result.as_dict() if self.last_result else None,
        }


_gate: ImportGate | None = None


def get_import_gate() -> ImportGate:
    global _gate
    if _gate is None:
        _gate = ImportGate()
    return _gate


async def import_activity_log(server_id: int, payload: Any, file_type: str = "json") -> bool:
    """Submit a Playback Reporting payload for import; returns acceptance."""
    return await get_import_gate().submit(server_id, payload, file_type)
