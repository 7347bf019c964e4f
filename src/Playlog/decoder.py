"""Decoding of Playback Reporting exports into ActivityRecords.

Two upstream shapes are understood: a JSON array of objects keyed by the
upstream field names, and the plugin's tab-separated export with exactly nine
columns per line. Decoding never raises; unusable rows are dropped and
counted in ``DecodeResult.dropped``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError

from Playlog.metrics import inc_counter
from Playlog.schemas import TSV_FIELDS, ActivityRecord

log = structlog.get_logger()

SUPPORTED_FORMATS: tuple[str, ...] = ("json", "tsv")

_LINE_SPLIT = re.compile(r"\r\n|\r|\n")
_SAMPLE_CHARS = 500
# Every exported JSON row carries this key exactly once
_JSON_ROW_MARKER = '"DateCreated"'


@dataclass(frozen=True)
class DecodeResult:
    records: list[ActivityRecord] = field(default_factory=list)
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.records)


def _as_text(data: str | bytes | bytearray) -> str:
    if isinstance(data, bytes | bytearray):
        return bytes(data).decode("utf-8-sig", errors="replace")
    return data


def _record_from_mapping(row: dict[str, Any]) -> ActivityRecord | None:
    try:
        return ActivityRecord.model_validate(row)
    except ValidationError:
        log.warning("decoder.row.invalid", row_keys=sorted(row)[:12], exc_info=True)
        return None


def decode_json(data: Any) -> DecodeResult:
    if isinstance(data, str | bytes | bytearray):
        try:
            data = json.loads(_as_text(data))
        except (ValueError, RecursionError) as err:
            log.error("decoder.json.invalid", error=str(err))
            return DecodeResult()
    if not isinstance(data, Sequence) or isinstance(data, str | bytes | bytearray):
        log.error("decoder.json.not_a_list", payload_type=type(data).__name__)
        return DecodeResult()

    records: list[ActivityRecord] = []
    dropped = 0
    for row in data:
        rec = _record_from_mapping(row) if isinstance(row, dict) else None
        if rec is None:
            dropped += 1
            continue
        records.append(rec)
    return DecodeResult(records=records, dropped=dropped)


def decode_tsv(data: Any) -> DecodeResult:
    if not isinstance(data, str | bytes | bytearray):
        log.error("decoder.tsv.not_text", payload_type=type(data).__name__)
        return DecodeResult()
    text = _as_text(data)
    log.info("decoder.tsv.start", length=len(text))
    log.debug("decoder.tsv.sample", sample=text[:_SAMPLE_CHARS])

    lines = [line for line in _LINE_SPLIT.split(text) if line]
    records: list[ActivityRecord] = []
    dropped = 0
    for lineno, line in enumerate(lines, start=1):
        fields = line.split("\t")
        if len(fields) != len(TSV_FIELDS):
            log.warning(
                "decoder.tsv.line_skipped",
                line_number=lineno,
                field_count=len(fields),
                line=line[:200],
            )
            dropped += 1
            continue
        rec = _record_from_mapping(dict(zip(TSV_FIELDS, fields)))
        if rec is None:
            dropped += 1
            continue
        records.append(rec)

    log.info("decoder.tsv.parsed", lines=len(lines), records=len(records), dropped=dropped)
    if not records:
        log.error("decoder.tsv.empty")
    return DecodeResult(records=records, dropped=dropped)


def decode(data: Any, file_type: str) -> DecodeResult:
    """Decode a raw payload according to its declared format tag."""
    if file_type == "json":
        result = decode_json(data)
    elif file_type == "tsv":
        result = decode_tsv(data)
    else:
        log.error("decoder.format.unsupported", file_type=file_type)
        result = DecodeResult()
    if result.dropped:
        inc_counter("importer.decode.dropped", result.dropped)
    return result


def estimate_activity_count(data: Any, file_type: str) -> int:
    """Approximate row count for the submission log line; never raises.

    Counts markers instead of parsing, so it is safe to call on the event loop
    for payloads of any size. Blank and malformed lines are included.
    """
    if isinstance(data, list):
        return len(data)
    if isinstance(data, str):
        marker, newline = _JSON_ROW_MARKER, "\n"
    elif isinstance(data, bytes | bytearray):
        marker, newline = _JSON_ROW_MARKER.encode(), b"\n"
    else:
        return 0
    if file_type == "json":
        return data.count(marker)
    if file_type == "tsv":
        body = data.rstrip()
        return body.count(newline) + 1 if body else 0
    return 0
