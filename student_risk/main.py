"""FastAPI application for the Student Risk Scorer."""

import os
import csv
import logging
import traceback
from io import StringIO
from typing import Dict, List, Optional
from datetime import datetime

from fastapi import FastAPI, File, UploadFile, Form, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError
from dotenv import load_dotenv

from student_risk.errors import InvalidInput, UnknownPolicy
from student_risk.models import (
    BatchScoreRequest,
    BatchScoreResponse,
    RiskAssessment,
    ScoreRequest,
)
from student_risk.parsers import load_table, clean_snapshot_frame
from student_risk.policy import POLICIES, RiskPolicy, get_policy
from student_risk.provider import frame_to_snapshots
from student_risk.risk import score, score_many, summarize

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Risk Scorer", version="1.0.0")

# CORS configuration
allow_origins = os.getenv('ALLOW_ORIGINS', '*').split(',')
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '10'))
MAX_UPLOAD_SIZE = MAX_UPLOAD_SIZE_MB * 1024 * 1024

# In-memory storage for the latest batch results
results_cache: Dict[str, BatchScoreResponse] = {}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle request validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()}
    )


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    """Out-of-domain student data: the caller has to clean it."""
    return JSONResponse(
        status_code=422,
        content={
            "detail": str(exc),
            "field": exc.field,
            "student_id": exc.student_id
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    logger.exception("Unhandled error on %s", request.url.path)
    error_detail = str(exc)
    if os.getenv('DEBUG', 'False').lower() == 'true':
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )


def resolve_policy(name: Optional[str]) -> RiskPolicy:
    """Pick the requested policy, falling back to RISK_POLICY if configured."""
    name = name or os.getenv('RISK_POLICY')
    if not name:
        raise HTTPException(
            status_code=400,
            detail=f"No risk policy given. Choose one of: {', '.join(sorted(POLICIES))}"
        )
    try:
        return get_policy(name)
    except UnknownPolicy as e:
        raise HTTPException(status_code=400, detail=str(e))


def build_batch_response(results: List[RiskAssessment], policy: RiskPolicy) -> BatchScoreResponse:
    summary = summarize(results)
    for category in policy.categories:
        summary.setdefault(category, 0)

    response = BatchScoreResponse(
        success=True,
        message=f"Successfully scored {len(results)} students",
        policy=policy.name,
        results=results,
        summary=summary
    )

    session_id = datetime.now().isoformat()
    results_cache.clear()
    results_cache[session_id] = response

    logger.info(
        "Scored %d students under policy %s: %s",
        summary['Total'], policy.name,
        ", ".join(f"{summary[c]} {c}" for c in policy.categories)
    )
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


@app.get("/policies")
async def list_policies():
    """Registered risk policy presets."""
    return {name: policy.model_dump() for name, policy in POLICIES.items()}


@app.post("/score", response_model=RiskAssessment)
async def score_snapshot(request: ScoreRequest):
    """Score a single student snapshot."""
    policy = resolve_policy(request.policy)
    return score(request.snapshot, policy)


@app.post("/score/batch", response_model=BatchScoreResponse)
async def score_batch(request: BatchScoreRequest):
    """Score many snapshots; results are ordered highest risk first."""
    policy = resolve_policy(request.policy)
    results = score_many(request.snapshots, policy)
    return build_batch_response(results, policy)


@app.post("/upload", response_model=BatchScoreResponse)
async def upload_file(
    file: UploadFile = File(...),
    policy: Optional[str] = Form(None)
):
    """Upload a CSV or Excel snapshot table and score every row."""
    risk_policy = resolve_policy(policy)

    file_bytes = await file.read()
    if len(file_bytes) > MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {MAX_UPLOAD_SIZE_MB}MB"
        )

    try:
        raw_df = load_table(file_bytes, file.filename or "")
        snapshot_df = clean_snapshot_frame(raw_df)
        snapshots = frame_to_snapshots(snapshot_df)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid snapshot row: {e.errors()}")
    except InvalidInput:
        raise
    except ValueError as e:
        logger.warning("Rejected upload %s: %s", file.filename, e)
        raise HTTPException(status_code=400, detail=str(e))

    if not snapshots:
        raise HTTPException(status_code=400, detail="No student records found in the uploaded file.")

    results = score_many(snapshots, risk_policy)
    return build_batch_response(results, risk_policy)


@app.get("/results", response_model=BatchScoreResponse)
async def get_results():
    """Get the last scored batch."""
    if not results_cache:
        raise HTTPException(status_code=404, detail="No results available")

    latest_session = max(results_cache.keys())
    return results_cache[latest_session]


@app.get("/download.csv")
async def download_csv():
    """Download the last scored batch as CSV."""
    if not results_cache:
        raise HTTPException(status_code=404, detail="No results available")

    latest_session = max(results_cache.keys())
    response = results_cache[latest_session]

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow([
        'Student ID',
        'Policy',
        'GPA Risk',
        'Attendance Risk',
        'Activity Risk',
        'Composite Score',
        'Risk Category',
        'Recommended Intervention'
    ])
    for result in response.results:
        writer.writerow([
            result.student_id,
            result.policy,
            result.gpa_risk,
            result.attendance_risk,
            result.activity_risk,
            result.composite_score,
            result.risk_category,
            result.recommended_intervention or ''
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=student_risk_results_{latest_session[:10]}.csv"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
