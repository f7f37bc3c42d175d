"""
logs.py
-------
Purpose:
    Persisted debug log endpoints.

Usage:
    1. POST /logs - Add a client log entry
    2. GET /logs/export - Download every buffered entry as a text file
    3. DELETE /logs - Clear the buffer and the persisted copy
"""

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from lead_enricher.infrastructure.observability import log_buffer
from lead_enricher.models.api.export_request import LogEntryRequest
from lead_enricher.models.api.export_response import LogActionResponse

router = APIRouter(prefix="/logs", tags=["logs"])


@router.post("", response_model=LogActionResponse)
async def add_log(request: LogEntryRequest):
    buffer = log_buffer.log_buffer
    buffer.add(request.level, request.message, source=request.source, data=request.data)
    return LogActionResponse(success=True, entries=len(buffer.entries))


@router.get("/export", response_class=PlainTextResponse)
async def export_logs():
    """Text report, offered as an attachment named after the export time."""
    stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
    return PlainTextResponse(
        log_buffer.log_buffer.export(),
        headers={"Content-Disposition": f'attachment; filename="lead-enricher-logs-{stamp}.txt"'},
    )


@router.delete("", response_model=LogActionResponse)
async def clear_logs():
    success = await log_buffer.log_buffer.clear()
    return LogActionResponse(success=success, entries=0)
