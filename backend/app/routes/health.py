"""
Catalog Backend — Health Check Route
======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database (SELECT 1) and that the upload directory is
       writable, then reports an aggregate status.

Status levels:
    - healthy:   database and storage operational (HTTP 200)
    - degraded:  upload directory unavailable (HTTP 200, flag for monitoring)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import os
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text

from app import __version__
from app.database import engine
from app.schemas.product import HealthResponse
from app.services.file_service import FileService, get_file_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    response: Response,
    files: FileService = Depends(get_file_service),
) -> HealthResponse:
    db_status = "connected"
    storage_status = "writable"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if not (files.upload_root.is_dir() and os.access(files.upload_root, os.W_OK)):
        storage_status = "unavailable"
        if overall != "unhealthy":
            overall = "degraded"
        logger.warning("Health check: upload root not writable: %s", files.upload_root)

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage=storage_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
