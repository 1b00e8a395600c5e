"""FastAPI application for live clinic wait status.

Visitors at a clinic report roughly how long they have been waiting; other
visitors see a status derived from the last 90 minutes of reports.  The app
reads its configuration from environment variables and stores reports in
SQLite or PostgreSQL (see ``services.py``).  Redis is optional.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinics import get_clinic_by_slug, search_clinics
from errors import RateLimited, StorageError, ValidationError
from presentation import present
from schemas import ReportRequest
from services import (
    database_backend,
    get_clinic_status,
    get_connection,
    get_recent_reports,
    get_redis,
    has_recent_report,
    init_db,
    ping_database,
    submit_report,
    validate_clinic_id,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", 8000))

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Clinic Wait Status",
    description="Anonymous wait reports and live wait status for clinics",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    """Create the reports table if needed."""
    logger.info("Starting Clinic Wait Status")
    logger.info("Database: %s", database_backend())
    logger.info("Redis: %s", "configured" if os.getenv("REDIS_URL") else "not configured")
    conn_tmp = get_connection()
    try:
        init_db(conn_tmp)
    finally:
        conn_tmp.close()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response


# ===== ERROR HANDLERS =====

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@app.exception_handler(RateLimited)
async def rate_limited_handler(request: Request, exc: RateLimited) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "You've already shared an update recently. Thanks!",
            "retry_after": exc.retry_after,
        },
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Database error"})


# ===== ROUTES =====

@app.get("/health")
def health() -> Dict[str, Any]:
    conn = get_connection()
    try:
        ping_database(conn)
    finally:
        conn.close()
    return {
        "status": "ok",
        "database": database_backend(),
        "redis": "connected" if get_redis() else "not configured",
    }


@app.get("/clinics")
def list_clinics(q: str = "") -> Dict[str, Any]:
    """Search clinics by name or area."""
    matches = search_clinics(q)
    return {"clinics": [c.model_dump() for c in matches]}


@app.get("/clinics/{slug}")
def clinic_page(slug: str) -> Dict[str, Any]:
    clinic = get_clinic_by_slug(slug)
    if clinic is None:
        raise HTTPException(status_code=404, detail="Clinic not found")
    conn = get_connection()
    try:
        result = get_clinic_status(conn, clinic.id)
    finally:
        conn.close()
    return {"clinic": clinic.model_dump(), "status": present(result)}


@app.get("/api/reports")
def list_reports(clinic_id: Optional[str] = None) -> Dict[str, Any]:
    """Reports from the last 90 minutes for one clinic, newest first."""
    clinic_id = validate_clinic_id(clinic_id)
    conn = get_connection()
    try:
        reports = get_recent_reports(conn, clinic_id)
    finally:
        conn.close()
    logger.info("GET reports for clinic %s: %d recent reports", clinic_id, len(reports))
    return {"reports": [r.to_dict() for r in reports]}


@app.post("/api/reports", status_code=201)
def create_report(
    request: ReportRequest,
    x_device_id: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """Record that the caller is waiting at a clinic.

    The device id comes from the ``X-Device-Id`` header and is used only to
    stop the same device reporting twice for a clinic within an hour.
    """
    conn = get_connection()
    try:
        report = submit_report(conn, request.clinic_id, request.wait_bucket, x_device_id)
    finally:
        conn.close()
    return {"report": report.to_dict()}


@app.get("/api/status")
def clinic_status(clinic_id: Optional[str] = None) -> Dict[str, Any]:
    clinic_id = validate_clinic_id(clinic_id)
    conn = get_connection()
    try:
        result = get_clinic_status(conn, clinic_id)
    finally:
        conn.close()
    return present(result)


@app.get("/api/reports/recent-check")
def recent_check(
    clinic_id: Optional[str] = None,
    x_device_id: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """Whether the calling device already reported here within the hour."""
    clinic_id = validate_clinic_id(clinic_id)
    if not x_device_id:
        return {"already_reported": False}
    conn = get_connection()
    try:
        already = has_recent_report(conn, clinic_id, x_device_id.strip())
    finally:
        conn.close()
    return {"already_reported": already}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=PORT)
