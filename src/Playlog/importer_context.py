"""Outcome aggregation for playback imports.

``BatchOutcome`` holds the per-chunk counters; chunks are combined with ``+``
so the running total is never mutated in place. ``ImportResult`` is what a
finished import reports back to the gate and the HTTP/CLI surfaces.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from Playlog.reconciler import Outcome

ImportStatus = Literal["ok", "server_not_found", "failed"]


@dataclass(frozen=True)
class BatchOutcome:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0

    def __add__(self, other: BatchOutcome) -> BatchOutcome:
        if not isinstance(other, BatchOutcome):
            return NotImplemented
        return BatchOutcome(
            created=self.created + other.created,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            errored=self.errored + other.errored,
        )

    @classmethod
    def single(cls, outcome: Outcome) -> BatchOutcome:
        return cls(**{outcome.value: 1})

    @classmethod
    def all_errored(cls, count: int) -> BatchOutcome:
        return cls(errored=count)

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + self.errored

    def as_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errored,
        }


@dataclass(frozen=True)
class ImportResult:
    server_id: int
    status: ImportStatus
    outcome: BatchOutcome = field(default_factory=BatchOutcome)
    file_type: str | None = None
    decoded: int = 0
    dropped: int = 0
    duration_ms: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def as_dict(self) -> dict[str, Any]:
        return {
            "server_id": self.server_id,
            "status": self.status,
            "file_type": self.file_type,
            "decoded": self.decoded,
            "dropped": self.dropped,
            "duration_ms": self.duration_ms,
            "error": self.error,
            **self.outcome.as_dict(),
        }
