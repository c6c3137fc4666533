"""
One-shot Résumé API Routes.

Enhances résumé data entered through a form, without opening a session.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from refiner.common.error_handling import RefinerError
from refiner.common.types import GeneratedResume, ResumeRequest
from refiner.services.resume_service import ResumeService

from ..dependencies import get_resume_service
from ..models import ResumeHealthResponse
from ..request_utils import http_error, run_until_disconnect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/resume", tags=["resume"])


@router.post("/generate", response_model=GeneratedResume)
async def generate_resume(
    body: ResumeRequest,
    request: Request,
    service: ResumeService = Depends(get_resume_service),
) -> GeneratedResume:
    """Enhance a form-entered résumé in one model call."""
    if not body.full_name.strip() or not body.email.strip():
        raise HTTPException(status_code=400, detail="Full name and email are required.")

    try:
        return await run_until_disconnect(request, service.generate(body))
    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to generate resume for {body.full_name}: {e}")
        raise HTTPException(status_code=500, detail="An error occurred while generating the resume.")


@router.get("/health", response_model=ResumeHealthResponse)
async def health() -> ResumeHealthResponse:
    return ResumeHealthResponse(status="Healthy", timestamp=datetime.now(timezone.utc))
