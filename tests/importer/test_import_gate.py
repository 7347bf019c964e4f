"""Single-flight admission gate."""

import asyncio
import json
import time

import pytest

from Playlog import decoder, importer_gate
from Playlog.importer_context import BatchOutcome, ImportResult
from Playlog.importer_gate import ImportGate, import_activity_log
from Playlog.metrics import get_counter


class _BlockingRunner:
    def __init__(self):
        self.release = asyncio.Event()
        self.calls: list[tuple[int, str]] = []

    async def __call__(self, server_id, data, file_type):
        self.calls.append((server_id, file_type))
        await self.release.wait()
        return ImportResult(server_id=server_id, status="ok", outcome=BatchOutcome(created=1))


def test_try_acquire_and_release():
    gate = ImportGate()
    assert gate.try_acquire(1)
    assert gate.active_server_id == 1
    assert not gate.try_acquire(2)
    gate.release()
    assert not gate.running
    assert gate.try_acquire(2)


@pytest.mark.asyncio
async def test_second_import_is_rejected_while_one_runs():
    runner = _BlockingRunner()
    gate = ImportGate(runner=runner)

    assert await gate.submit(1, "[]", "json")
    await asyncio.sleep(0)
    assert gate.running and gate.active_server_id == 1

    # Any server, not just the same one, is rejected
    assert not await gate.submit(2, "[]", "json")
    assert not await gate.submit(1, "[]", "json")
    assert get_counter("gate.rejected") == 2

    runner.release.set()
    result = await gate.wait_idle()
    assert result is not None and result.outcome.created == 1
    assert not gate.running
    assert gate.active_server_id is None
    assert runner.calls == [(1, "json")]

    # Available again after completion
    assert await gate.submit(2, "[]", "tsv")
    await gate.wait_idle()
    assert runner.calls[-1] == (2, "tsv")


@pytest.mark.asyncio
async def test_worker_crash_releases_the_gate():
    async def _crashing(server_id, data, file_type):
        raise RuntimeError("worker died")

    gate = ImportGate(runner=_crashing)
    assert await gate.submit(7, "[]", "json")
    result = await gate.wait_idle()

    assert not gate.running
    assert result.status == "failed"
    assert "worker died" in result.error
    assert get_counter("gate.crashed") == 1
    assert await gate.submit(8, "[]", "json")
    await gate.wait_idle()


@pytest.mark.asyncio
async def test_status_snapshot():
    runner = _BlockingRunner()
    gate = ImportGate(runner=runner)
    assert gate.status() == {"running": False, "active_server_id": None, "last_result": None}
    await gate.submit(3, "[]", "json")
    assert gate.status()["running"] is True
    runner.release.set()
    await gate.wait_idle()
    status = gate.status()
    assert status["running"] is False
    assert status["last_result"]["created"] == 1


@pytest.mark.asyncio
async def test_entry_point_runs_a_real_import(server, monkeypatch):
    monkeypatch.setattr(importer_gate, "_gate", ImportGate())
    payload = json.dumps(
        [
            {
                "DateCreated": "2024-01-15 10:30:00",
                "UserId": "",
                "ItemId": "abc",
                "ItemType": "Movie",
                "ItemName": "Film",
                "PlaybackMethod": "DirectPlay",
                "ClientName": "Web",
                "DeviceName": "Chrome",
                "PlayDuration": "60",
            }
        ]
    )
    assert await import_activity_log(server.id, payload, "json")
    result = await importer_gate.get_import_gate().wait_idle()
    assert result.ok
    assert result.outcome.as_dict() == {"created": 1, "updated": 0, "skipped": 0, "errors": 0}


class _RecordingLog:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def info(self, event, **kw):
        self.events.append((event, kw))

    error = warning = debug = info


class _NoParsing:
    @staticmethod
    def loads(*args, **kwargs):
        raise AssertionError("payload parsed during admission")


@pytest.mark.asyncio
async def test_submit_does_not_parse_a_large_payload(monkeypatch):
    row = {
        "DateCreated": "2024-01-15 10:30:00",
        "UserId": "u1",
        "ItemId": "i1",
        "ItemType": "Movie",
        "ItemName": "Film",
        "PlaybackMethod": "DirectPlay",
        "ClientName": "Web",
        "DeviceName": "Chrome",
        "PlayDuration": "60",
    }
    payload = json.dumps([row] * 300_000)
    recorder = _RecordingLog()
    monkeypatch.setattr(importer_gate, "log", recorder)
    monkeypatch.setattr(decoder, "json", _NoParsing())

    async def _noop(server_id, data, file_type):
        return ImportResult(server_id=server_id, status="ok")

    gate = ImportGate(runner=_noop)
    started = time.perf_counter()
    assert await gate.submit(1, payload, "json")
    assert time.perf_counter() - started < 0.5
    await gate.wait_idle()

    accepted = dict(recorder.events)["gate.import.accepted"]
    assert accepted["estimated_activities"] == 300_000


@pytest.mark.asyncio
async def test_rejection_log_names_the_server_holding_the_gate(monkeypatch):
    recorder = _RecordingLog()
    monkeypatch.setattr(importer_gate, "log", recorder)
    runner = _BlockingRunner()
    gate = ImportGate(runner=runner)

    await gate.submit(1, "[]", "json")
    assert not await gate.submit(2, "[]", "json")
    rejected = [kw for event, kw in recorder.events if event == "gate.import.rejected"]
    assert rejected == [{"server_id": 2, "active_server_id": 1}]

    runner.release.set()
    await gate.wait_idle()
