"""
CV Refinement API Routes.

Session-scoped refinement flow:
- Upload: CV file or pasted text, analyzed into structured data
- Chat: free-text conversation about the CV
- Revise: structured edit that replaces the CV data
- Generate: optimized résumé and cover letter
- Session: snapshot lookup and phone normalization
- Fetch job: scrape a job posting to prefill the target job
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile

from refiner.common.error_handling import RefinerError, SessionNotFoundError
from refiner.common.types import (
    ChatResult,
    CoverLetter,
    CvSession,
    GeneratedResume,
    JobPostingResult,
    UploadResult,
)
from refiner.services.job_posting_fetcher import JobPostingFetcher
from refiner.services.refinement_service import RefinementService
from refiner.services.text_extractor import extract_text_async, file_format_for

from ..config import settings
from ..dependencies import get_job_posting_fetcher, get_refinement_service
from ..models import (
    ChatRequest,
    CoverLetterRequest,
    CoverLetterRevisionRequest,
    FetchJobRequest,
    GenerateRequest,
    NormalizePhoneRequest,
    NormalizePhoneResponse,
    ReviseRequest,
    RevisionResponse,
    TextUploadRequest,
)
from ..request_utils import http_error, run_until_disconnect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cv", tags=["cv"])


def _require(*values: str, message: str) -> None:
    """Reject the request before any I/O if a required field is blank."""
    if any(not (value or "").strip() for value in values):
        raise HTTPException(status_code=400, detail=message)


# =============================================================================
# Upload
# =============================================================================


@router.post("/upload", response_model=UploadResult)
async def upload_cv(
    request: Request,
    file: UploadFile = File(None),
    language: str = Query(None),
    country_code: str = Query(None, alias="countryCode"),
    service: RefinementService = Depends(get_refinement_service),
) -> UploadResult:
    """
    Upload a CV file (PDF or DOCX) for AI analysis.

    Opens a new refinement session.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    try:
        file_format = file_format_for(file.filename)
        data = await file.read()
        if not data:
            raise HTTPException(status_code=400, detail="No file uploaded")

        logger.info(f"Processing uploaded CV: {file.filename} ({len(data)} bytes)")

        async def process() -> UploadResult:
            text = await extract_text_async(data, file_format)
            return await service.upload(
                text,
                language=language or settings.default_language,
                country_code=country_code or settings.default_country_code,
            )

        return await run_until_disconnect(request, process())

    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to process CV upload: {e}")
        raise HTTPException(status_code=500, detail="Failed to process CV. Please try again.")


@router.post("/upload-text", response_model=UploadResult)
async def upload_text(
    body: TextUploadRequest,
    request: Request,
    service: RefinementService = Depends(get_refinement_service),
) -> UploadResult:
    """Upload raw CV text (e.g. copied from LinkedIn)."""
    _require(body.text, message="No text provided")

    try:
        logger.info(f"Processing uploaded text ({len(body.text)} chars)")
        return await run_until_disconnect(
            request,
            service.upload(
                body.text,
                language=body.language or settings.default_language,
                country_code=body.country_code or settings.default_country_code,
            ),
        )
    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to process text upload: {e}")
        raise HTTPException(status_code=500, detail="Failed to process text. Please try again.")


# =============================================================================
# Conversation
# =============================================================================


@router.post("/chat", response_model=ChatResult)
async def chat(
    body: ChatRequest,
    request: Request,
    service: RefinementService = Depends(get_refinement_service),
) -> ChatResult:
    """Chat with the assistant about improving the CV."""
    _require(body.session_id, body.message, message="Session ID and message are required")

    try:
        return await run_until_disconnect(
            request,
            service.chat(
                body.session_id,
                body.message,
                target_job=body.target_job_title,
                job_description=body.target_job_description,
                language=body.language or settings.default_language,
            ),
        )
    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to process chat message: {e}")
        raise HTTPException(status_code=500, detail="Failed to process message. Please try again.")


@router.post("/revise", response_model=RevisionResponse)
async def revise(
    body: ReviseRequest,
    request: Request,
    service: RefinementService = Depends(get_refinement_service),
) -> RevisionResponse:
    """Apply a requested change to the structured CV data."""
    _require(body.session_id, body.instruction, message="Session ID and instruction are required")

    try:
        result = await run_until_disconnect(
            request,
            service.propose_revision(
                body.session_id,
                body.instruction,
                target_job=body.target_job_title,
                job_description=body.target_job_description,
                language=body.language or settings.default_language,
            ),
        )
        return RevisionResponse(message=result.message, updated_cv_data=result.updated_data)
    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to revise CV: {e}")
        raise HTTPException(status_code=500, detail="Failed to revise CV. Please try again.")


# =============================================================================
# Artifacts
# =============================================================================


@router.post("/generate", response_model=GeneratedResume)
async def generate_resume(
    body: GenerateRequest,
    request: Request,
    service: RefinementService = Depends(get_refinement_service),
) -> GeneratedResume:
    """Generate the final optimized résumé."""
    _require(body.session_id, message="Session ID is required")

    try:
        return await run_until_disconnect(
            request,
            service.generate_resume(
                body.session_id,
                target_job=body.target_job_title,
                job_description=body.target_job_description,
                extra_instructions=body.additional_instructions,
                language=body.language or settings.default_language,
                country_code=body.country_code,
                template=body.template,
            ),
        )
    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to generate resume: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate resume. Please try again.")


@router.post("/cover-letter", response_model=CoverLetter)
async def generate_cover_letter(
    body: CoverLetterRequest,
    request: Request,
    service: RefinementService = Depends(get_refinement_service),
) -> CoverLetter:
    """Generate a cover letter for a job application."""
    _require(
        body.session_id,
        body.job_title,
        body.company_name,
        message="Session ID, job title, and company name are required",
    )

    try:
        return await run_until_disconnect(
            request,
            service.generate_cover_letter(
                body.session_id,
                body.job_title,
                body.company_name,
                job_description=body.job_description,
                language=body.language or settings.default_language,
            ),
        )
    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to generate cover letter: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate cover letter. Please try again.")


@router.post("/cover-letter/revise", response_model=CoverLetter)
async def revise_cover_letter(
    body: CoverLetterRevisionRequest,
    request: Request,
    service: RefinementService = Depends(get_refinement_service),
) -> CoverLetter:
    """Apply a requested change to a generated cover letter."""
    _require(body.session_id, body.instruction, message="Session ID and instruction are required")

    try:
        return await run_until_disconnect(
            request,
            service.revise_cover_letter(
                body.session_id,
                body.cover_letter,
                body.instruction,
                language=body.language or settings.default_language,
            ),
        )
    except HTTPException:
        raise
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to revise cover letter: {e}")
        raise HTTPException(status_code=500, detail="Failed to revise cover letter. Please try again.")


# =============================================================================
# Session
# =============================================================================


@router.get("/session/{session_id}", response_model=CvSession)
async def get_session(
    session_id: str,
    service: RefinementService = Depends(get_refinement_service),
) -> CvSession:
    """Get a snapshot of the session."""
    try:
        return service.get_session(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post("/session/{session_id}/normalize-phone", response_model=NormalizePhoneResponse)
async def normalize_phone(
    session_id: str,
    body: NormalizePhoneRequest,
    service: RefinementService = Depends(get_refinement_service),
) -> NormalizePhoneResponse:
    """Format the session's phone number for a region and store it."""
    try:
        phone = service.normalize_phone(session_id, body.country_code)
        return NormalizePhoneResponse(phone=phone)
    except RefinerError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Failed to normalize phone number: {e}")
        raise HTTPException(status_code=500, detail="Failed to normalize phone number. Please try again.")


# =============================================================================
# Job posting
# =============================================================================


@router.post("/fetch-job", response_model=JobPostingResult)
async def fetch_job(
    body: FetchJobRequest,
    fetcher: JobPostingFetcher = Depends(get_job_posting_fetcher),
) -> JobPostingResult:
    """
    Scrape a job posting to prefill the target job.

    Always answers 200; failures are reported in the result body.
    """
    _require(body.url, message="URL is required")
    return await fetcher.fetch(body.url)
