"""
FastAPI service for the CV refiner.

Hosts the session-scoped refinement API (upload, chat, revise, generate,
cover letter) and the sessionless one-shot résumé API. All state lives in an
in-memory session store; the language model is reached through a single
pooled client that is closed on shutdown.

Run with:
    uvicorn refiner_service.app:app --port 8000
"""

import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from refiner.common.llm_client import LanguageModelClient
from refiner.common.logger import setup_logging
from refiner.services.session_store import SessionStore

from . import __version__
from .config import settings, validate_config_on_startup
from .dependencies import get_job_posting_fetcher, get_llm_client, get_session_store
from .models import HealthResponse
from .routes import cv_router, resume_router

# Configure logging
setup_logging(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)

# Validate configuration at startup
validate_config_on_startup()

app = FastAPI(title="CV Refiner", version=__version__)

# Configure CORS using validated settings
if settings.cors_origins_list:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include modular route handlers
app.include_router(cv_router)
app.include_router(resume_router)


def _jsonable_errors(exc: RequestValidationError) -> list:
    """Location and message of each validation error, safe to serialize."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def malformed_request_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400."""
    logger.info(f"Malformed request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"detail": "Malformed request body", "errors": _jsonable_errors(exc)},
    )


@app.get("/health", response_model=HealthResponse)
async def health_check(store: SessionStore = Depends(get_session_store)) -> HealthResponse:
    """
    Health check endpoint for container orchestration.

    Returns service status and session capacity information.
    """
    return HealthResponse(
        status="healthy",
        llm_provider=settings.llm_provider,
        model=settings.llm_model_name,
        active_sessions=len(store),
        timestamp=datetime.now(timezone.utc),
    )


@app.on_event("startup")
async def startup_session_store():
    """Create the session store eagerly."""
    store = get_session_store()
    logger.info(
        f"Session store ready (ttl={store.ttl.total_seconds():.0f}s, max={store.max_sessions})"
    )


@app.on_event("shutdown")
async def shutdown_clients():
    """Close pooled HTTP connections on shutdown."""
    llm: LanguageModelClient = get_llm_client()
    await llm.aclose()
    await get_job_posting_fetcher().aclose()
    logger.info("Language model and job fetcher clients closed")
