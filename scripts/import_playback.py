#!/usr/bin/env python3
"""Import a Playback Reporting export file for one server."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from Playlog.config import load_settings
from Playlog.importer_gate import get_import_gate
from Playlog.logging import setup_logging


def _infer_format(path: Path) -> str:
    return "json" if path.suffix.lower() == ".json" else "tsv"


async def _run(server_id: int, file_path: Path, file_type: str) -> int:
    data = file_path.read_bytes()
    gate = get_import_gate()
    if not await gate.submit(server_id, data, file_type):
        print("an import is already running", file=sys.stderr)
        return 1
    result = await gate.wait_idle()
    print(json.dumps(result.as_dict() if result else None, indent=2))
    return 0 if result is not None and result.ok else 1


def main() -> None:
    ap = argparse.ArgumentParser(description="Import a Playback Reporting export (JSON or TSV).")
    ap.add_argument("--server-id", type=int, required=True)
    ap.add_argument("--file", type=Path, required=True)
    ap.add_argument(
        "--format",
        choices=["json", "tsv"],
        default=None,
        help="Payload format; inferred from the file extension when omitted.",
    )
    args = ap.parse_args()
    setup_logging(load_settings())
    file_type = args.format or _infer_format(args.file)
    sys.exit(asyncio.run(_run(args.server_id, args.file, file_type)))


if __name__ == "__main__":
    main()
