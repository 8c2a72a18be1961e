"""FastAPI main application for the Completion Report service."""

import asyncio
import logging
import os
import traceback
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, UploadFile, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

from completion_report.models import FinalReportRow, ProcessResponse, ProcessedStats
from completion_report.parsers import (
    SUPPORTED_EXTENSIONS,
    IngestionError,
    IngestionUnavailable,
    load_excel,
)
from completion_report.reconcile import process_data
from completion_report.report import REPORT_FILENAME as DEFAULT_REPORT_FILENAME, generate_excel_report
from completion_report.stats import compute_stats

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Completion Report", version="1.0.0")

# CORS configuration
allow_origins = os.getenv('ALLOW_ORIGINS', '*').split(',')
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    error_detail = str(exc)
    if os.getenv('DEBUG', 'False').lower() == 'true':
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    logger.error("Unhandled error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )


# Configuration
MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '10'))
MAX_UPLOAD_SIZE = MAX_UPLOAD_SIZE_MB * 1024 * 1024
REPORT_FILENAME = os.getenv('REPORT_FILENAME', DEFAULT_REPORT_FILENAME)

# In-memory storage for the latest processed report (session-based)
results_cache: Dict[str, Dict[str, Any]] = {}


def validate_upload(upload: UploadFile, file_bytes: bytes, label: str) -> None:
    """Reject uploads that are too large or not a supported spreadsheet."""
    if len(file_bytes) > MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"{label}: file too large. Maximum size: {MAX_UPLOAD_SIZE_MB}MB"
        )

    if not (upload.filename or "").lower().endswith(SUPPORTED_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=f"{label}: invalid file type. Please upload an Excel file (.xlsx) or CSV"
        )


def ingest(upload: UploadFile, file_bytes: bytes, label: str) -> List[Dict[str, Any]]:
    """Read one upload into canonical rows, mapping ingestion errors to HTTP errors."""
    try:
        return load_excel(file_bytes, upload.filename or "upload.xlsx")
    except IngestionUnavailable as e:
        logger.error("Spreadsheet library unavailable: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    except IngestionError as e:
        logger.warning("Could not load %s (%s): %s", label, upload.filename, e)
        raise HTTPException(status_code=400, detail=f"{label}: {e}")


def latest_result() -> Optional[Dict[str, Any]]:
    if not results_cache:
        return None
    return results_cache[max(results_cache.keys())]


@app.get("/", response_class=HTMLResponse)
async def root():
    """Serve the main HTML page."""
    html_path = os.path.join(os.path.dirname(__file__), 'static', 'index.html')
    if os.path.exists(html_path):
        with open(html_path, 'r', encoding='utf-8') as f:
            return HTMLResponse(content=f.read())
    return HTMLResponse(content="<h1>Completion Report</h1><p>Static files not found. Please ensure the static directory exists.</p>")


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


@app.post("/debug-columns")
async def debug_columns(file: UploadFile = File(...)):
    """Debug endpoint to inspect how the columns of an upload resolve."""
    file_bytes = await file.read()
    rows = ingest(file, file_bytes, "File")
    columns: Dict[str, None] = {}
    for row in rows:
        for key in row:
            columns.setdefault(key, None)
    return JSONResponse(content={
        "columns": list(columns),
        "sample": [{k: str(v) for k, v in row.items()} for row in rows[:3]]
    })


@app.post("/process", response_model=ProcessResponse)
async def process_files(
    lms_talent: UploadFile = File(...),
    lms_pharmacy: UploadFile = File(...),
    master: UploadFile = File(...)
):
    """Reconcile the two LMS exports with the master roster."""
    uploads = [
        (lms_talent, "LMS Raw Data – Talent"),
        (lms_pharmacy, "LMS Raw Data – Pharmacy"),
        (master, "Master Saudi Data Sheet"),
    ]

    # The three uploads are independent; any failed read aborts the run.
    contents = await asyncio.gather(*(upload.read() for upload, _ in uploads))

    for (upload, label), file_bytes in zip(uploads, contents):
        validate_upload(upload, file_bytes, label)

    lms1_rows, lms2_rows, master_rows = [
        ingest(upload, file_bytes, label)
        for (upload, label), file_bytes in zip(uploads, contents)
    ]
    logger.info(
        "Loaded %d Talent rows, %d Pharmacy rows, %d master rows",
        len(lms1_rows), len(lms2_rows), len(master_rows)
    )

    final_rows = process_data(lms1_rows, lms2_rows, master_rows)
    stats = compute_stats(final_rows)

    session_id = datetime.now().isoformat()
    results_cache.clear()
    results_cache[session_id] = {'rows': final_rows, 'stats': stats}

    summary = stats['summary']
    logger.info(
        "Results: %d pharmacists (%d completed, %d in progress, %d not started)",
        summary['total'], summary['completed'], summary['in_progress'], summary['not_started']
    )

    return ProcessResponse(
        success=True,
        message=f"Successfully processed {len(final_rows)} pharmacists",
        results=[FinalReportRow.model_validate(row) for row in final_rows],
        stats=ProcessedStats.model_validate(stats)
    )


@app.get("/results")
async def get_results():
    """Get the last processed results."""
    result = latest_result()
    if result is None:
        raise HTTPException(status_code=404, detail="No results available")

    return {
        'session_id': max(results_cache.keys()),
        'results': result['rows'],
        'stats': result['stats']
    }


@app.get("/download.xlsx")
async def download_report():
    """Download the processed results as a styled Excel report."""
    result = latest_result()
    if result is None:
        raise HTTPException(status_code=404, detail="No results available")

    content = generate_excel_report(result['rows'], result['stats'])
    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename={REPORT_FILENAME}"
        }
    )


# Mount static files
static_path = os.path.join(os.path.dirname(__file__), 'static')
if os.path.exists(static_path):
    app.mount("/static", StaticFiles(directory=static_path), name="static")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
