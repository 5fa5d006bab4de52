import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import Settings
from .database import create_engine, create_sessionmaker, create_tables
from .orchestrator import AnalysisService
from .prompt import build_prompt
from .schemas import Submission
from .store import get_session_content, save_session

# --- Rate limiting ---
RATE_LIMIT_PER_IP = os.getenv("RATE_LIMIT_PER_IP", "100/15minutes")

limiter = Limiter(key_func=get_remote_address)

_STARTED_AT = time.monotonic()


class SubmissionIn(BaseModel):
    summary: str = ""
    impacts: str = ""
    structure: str = ""


class AnalyzeRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    submission: Optional[SubmissionIn] = None
    document_content: Optional[str] = Field(default=None, alias="documentContent")


class SessionRequest(BaseModel):
    title: str = "Training Session"
    content: str
    file_name: Optional[str] = Field(default=None, alias="fileName")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings.from_env()
    app.state.settings = settings
    app.state.service = AnalysisService(settings)
    app.state.sessionmaker = None

    logger.info(
        "Analysis service ready (provider configured: %s, model: %s)",
        settings.provider_configured,
        settings.model,
    )

    engine = None
    if settings.database_url:
        engine = create_engine(settings.database_url)
        await create_tables(engine)
        app.state.sessionmaker = create_sessionmaker(engine)
    try:
        yield
    finally:
        if engine is not None:
            await engine.dispose()


app = FastAPI(title="Regulatory Newsflash Trainer", lifespan=lifespan)
app.state.limiter = limiter


def get_service(request: Request) -> AnalysisService:
    return request.app.state.service


def get_sessionmaker(request: Request):
    return request.app.state.sessionmaker


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        {"success": False, "error": "Too many requests, please try again later"},
        status_code=429,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        {"success": False, "error": exc.detail},
        status_code=exc.status_code,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.post("/api/analyze")
@limiter.limit(RATE_LIMIT_PER_IP)
async def analyze(
    request: Request,
    body: AnalyzeRequest,
    service: AnalysisService = Depends(get_service),
    sessionmaker=Depends(get_sessionmaker),
):
    started = time.monotonic()

    # --- Validate inputs ---
    sub = body.submission
    if sub is None or not sub.summary.strip() or not sub.impacts.strip():
        raise HTTPException(status_code=400, detail="Missing required submission fields")

    # --- Resolve reference text ---
    content = body.document_content
    if not content and body.session_id and sessionmaker is not None:
        try:
            content = await get_session_content(sessionmaker, body.session_id)
        except Exception as exc:
            logger.warning("Could not retrieve session content: %s", exc)
        else:
            if content is None:
                logger.warning("Session %s not found", body.session_id)

    submission = Submission(
        summary=sub.summary, impacts=sub.impacts, structure=sub.structure
    )
    result = await service.analyze(submission, content or "")

    logger.info(
        "Analysis complete (source: %s, score: %d)", result.source.value, result.score
    )
    return {
        "success": True,
        **result.to_public(),
        "processingTime": int((time.monotonic() - started) * 1000),
    }


@app.post("/api/sessions")
@limiter.limit(RATE_LIMIT_PER_IP)
async def create_session(
    request: Request,
    body: SessionRequest,
    sessionmaker=Depends(get_sessionmaker),
):
    if sessionmaker is None:
        raise HTTPException(status_code=503, detail="Session storage is not configured")
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Session content is empty")

    session_id = await save_session(
        sessionmaker, body.content, title=body.title, file_name=body.file_name
    )
    return {"success": True, "sessionId": session_id}


@app.get("/api/health")
async def health(
    request: Request,
    service: AnalysisService = Depends(get_service),
    sessionmaker=Depends(get_sessionmaker),
):
    circuit = service.circuit.snapshot()
    services = {
        "provider": service.settings.provider_configured,
        "storage": sessionmaker is not None,
    }
    body = {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "services": services,
        "circuit": {
            "open": circuit.open,
            "consecutiveFailures": circuit.consecutive_failures,
        },
    }
    # Session storage is optional.
    status_code = 200 if services["provider"] else 503
    return JSONResponse(body, status_code=status_code)


@app.get("/api/debug/prompt")
async def debug_prompt():
    test_submission = Submission(
        summary="Test summary for checking prompt",
        impacts="Test impact analysis",
        structure="Test structure",
    )
    prompt = build_prompt(test_submission, "Test document content")
    return {
        "success": True,
        "promptLength": len(prompt),
        "includesProfessionalExample": "professionalExample" in prompt,
        "promptPreview": prompt[:500] + "...",
        "promptEnd": "..." + prompt[-300:],
    }
