"""FastAPI app entrypoint for Playlog."""

import time
import uuid

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from Playlog.config import load_settings
from Playlog.decoder import SUPPORTED_FORMATS
from Playlog.importer_gate import get_import_gate
from Playlog.logging import redact_settings, setup_logging
from Playlog.metrics import get_counters

log = structlog.get_logger()
settings = load_settings()
setup_logging(settings)
app = FastAPI(title="Playlog")


@app.on_event("startup")
async def startup():
    log.info("app.startup", config=redact_settings(settings))


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Assign a request_id, bind it to structlog context, and measure duration."""
    from structlog.contextvars import bind_contextvars, clear_contextvars

    request_id = str(uuid.uuid4())
    start = time.perf_counter()
    bind_contextvars(request_id=request_id)
    status_code = 500
    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 200)
        return response
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            "http.request.completed",
            http_path=str(request.url.path),
            http_method=request.method,
            http_status_code=status_code,
            duration_ms=duration_ms,
        )
        clear_contextvars()


@app.post("/servers/{server_id}/playback-reporting/import", status_code=202)
async def import_playback_reporting(
    server_id: int,
    request: Request,
    file_type: str = Query(default="json"),
):
    if file_type not in SUPPORTED_FORMATS:
        raise HTTPException(status_code=400, detail=f"unsupported file_type: {file_type}")
    raw = await request.body()
    log.info("import.request.received", server_id=server_id, file_type=file_type, size=len(raw))
    accepted = await get_import_gate().submit(server_id, raw, file_type)
    if not accepted:
        return JSONResponse(
            status_code=409,
            content={"accepted": False, "detail": "an import is already running"},
        )
    return {"accepted": True}


@app.get("/import/status")
async def import_status():
    return get_import_gate().status()


@app.get("/metrics")
async def metrics():
    return get_counters()
