from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from torchlight.config import build_pipeline_config, configure_logging, get_settings
from torchlight.exporter import ExportError
from torchlight.schemas import (
    ExportFailureResponse,
    GeneratePdfResponse,
    HealthOut,
    PRE_BUILT_SCORECARD_FACTORS,
    ScorecardFactorSeed,
    SubmissionRecordOut,
    SubmitResponse,
)
from torchlight.services import MalformedRequest, SubmissionOrchestrator, encode_document

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    app.state.orchestrator = SubmissionOrchestrator(build_pipeline_config(settings))
    log.info("Torchlight API ready")
    yield


app = FastAPI(
    title="Torchlight",
    version="0.1.0",
    description=(
        "Intake API for the Torchlight ETA onboarding questionnaire. "
        "Stores submissions and renders them as printable PDF documents. "
        "All endpoints return JSON. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Submissions", "description": "Submit onboarding forms and read stored submissions."},
        {"name": "Documents", "description": "Render a submission as a PDF without storing it."},
        {"name": "Reference", "description": "Static reference data for building a fresh form."},
        {"name": "Health", "description": "Liveness check."},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    log.info("%s %s", request.method, request.url.path)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def get_orchestrator(request: Request) -> SubmissionOrchestrator:
    return request.app.state.orchestrator


async def _read_payload(request: Request) -> Any:
    raw = await request.body()
    try:
        return json.loads(raw or b"")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedRequest(f"Request body is not valid JSON: {exc}") from exc


def _store_or_503(orchestrator: SubmissionOrchestrator):
    store = orchestrator.store
    if store is None:
        return None, JSONResponse(status_code=503, content={"error": "Database not configured"})
    return store, None


# ---------------------------------------------------------------------------
# Routes: Submissions
# ---------------------------------------------------------------------------


@app.post("/api/submit", response_model=SubmitResponse,
          tags=["Submissions"], summary="Submit an onboarding form")
async def submit(request: Request, orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)):
    try:
        payload = await _read_payload(request)
        outcome = await orchestrator.submit(payload)
    except MalformedRequest as exc:
        log.error("Server error: %s", exc)
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": "Internal server error",
            "message": str(exc),
            "dbSaved": False,
            "pdfGenerated": False,
            "pdf": None,
        })
    return JSONResponse(outcome.to_response())


@app.options("/api/submit", include_in_schema=False)
async def submit_options():
    return Response(status_code=200)


@app.get("/api/submissions", response_model=list[SubmissionRecordOut],
         tags=["Submissions"], summary="List stored submissions, newest first")
async def list_submissions(orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)):
    store, unavailable = _store_or_503(orchestrator)
    if unavailable is not None:
        return unavailable
    return store.list_records()


@app.get("/api/submissions/{submission_id}", response_model=SubmissionRecordOut,
         tags=["Submissions"], summary="Get one stored submission")
async def get_submission(submission_id: str, orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)):
    store, unavailable = _store_or_503(orchestrator)
    if unavailable is not None:
        return unavailable
    record = store.get_record(submission_id)
    if record is None:
        return JSONResponse(status_code=404, content={"error": "Submission not found"})
    return record


# ---------------------------------------------------------------------------
# Routes: Documents
# ---------------------------------------------------------------------------


@app.post("/api/generate-pdf", response_model=GeneratePdfResponse,
          responses={500: {"model": ExportFailureResponse}},
          tags=["Documents"], summary="Render a submission as PDF without storing it")
async def generate_pdf(request: Request, orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)):
    try:
        payload = await _read_payload(request)
        document = await orchestrator.generate_pdf(payload)
    except MalformedRequest as exc:
        log.error("PDF generation request rejected: %s", exc)
        return JSONResponse(status_code=500, content={
            "success": False, "error": "Internal server error", "message": str(exc),
        })
    except ExportError as exc:
        log.error("PDF generation error (%s): %s", exc.kind.value, exc)
        return JSONResponse(status_code=500, content={
            "success": False, "error": "PDF generation failed", "message": f"{exc.kind.value}: {exc}",
        })
    return {"success": True, "pdf": encode_document(document)}


@app.options("/api/generate-pdf", include_in_schema=False)
async def generate_pdf_options():
    return Response(status_code=200)


# ---------------------------------------------------------------------------
# Routes: Reference & Health
# ---------------------------------------------------------------------------


@app.get("/api/scorecard/defaults", response_model=list[ScorecardFactorSeed],
         tags=["Reference"], summary="The pre-built scorecard factors")
async def scorecard_defaults():
    return [
        {"id": fid, "name": name, "definition": definition, "weight": None}
        for fid, name, definition in PRE_BUILT_SCORECARD_FACTORS
    ]


@app.get("/api/health", response_model=HealthOut, tags=["Health"], summary="Liveness check")
async def health():
    return {"status": "ok", "message": "Torchlight API is running"}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    settings = get_settings()
    uvicorn.run("torchlight.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
