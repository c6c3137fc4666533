"""
Pydantic models for CV refiner service requests and responses.

Request fields default to blank so that a missing field reaches the handler
and is rejected with a specific message rather than a generic schema error.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from refiner.common.types import CamelModel, CoverLetter, ParsedCvData


class TextUploadRequest(CamelModel):
    """Request body for uploading pasted CV text."""

    text: str = ""
    language: Optional[str] = None
    country_code: Optional[str] = None


class ChatRequest(CamelModel):
    """Request body for one chat turn."""

    session_id: str = ""
    message: str = ""
    target_job_title: Optional[str] = None
    target_job_description: Optional[str] = None
    language: Optional[str] = None


class ReviseRequest(CamelModel):
    """Request body for a structured CV revision."""

    session_id: str = ""
    instruction: str = ""
    target_job_title: Optional[str] = None
    target_job_description: Optional[str] = None
    language: Optional[str] = None


class RevisionResponse(CamelModel):
    """Response for a structured CV revision; ``updated_cv_data`` is None when nothing changed."""

    message: str
    updated_cv_data: Optional[ParsedCvData] = None


class GenerateRequest(CamelModel):
    """Request body for generating a résumé from a session."""

    session_id: str = ""
    target_job_title: Optional[str] = None
    target_job_description: Optional[str] = None
    additional_instructions: Optional[str] = None
    language: Optional[str] = None
    country_code: Optional[str] = None
    template: Optional[str] = None


class CoverLetterRequest(CamelModel):
    """Request body for generating a cover letter."""

    session_id: str = ""
    job_title: str = ""
    company_name: str = ""
    job_description: Optional[str] = None
    language: Optional[str] = None


class CoverLetterRevisionRequest(CamelModel):
    """Request body for revising a generated cover letter."""

    session_id: str = ""
    cover_letter: CoverLetter = Field(default_factory=CoverLetter)
    instruction: str = ""
    language: Optional[str] = None


class NormalizePhoneRequest(CamelModel):
    """Request body for phone normalization."""

    country_code: Optional[str] = None


class NormalizePhoneResponse(CamelModel):
    """Stored phone number after normalization."""

    phone: Optional[str] = None


class FetchJobRequest(CamelModel):
    """Request body for scraping a job posting."""

    url: str = ""


class HealthResponse(CamelModel):
    """Health check response."""

    status: str
    llm_provider: str
    model: str
    active_sessions: int
    timestamp: datetime


class ResumeHealthResponse(CamelModel):
    """Health response of the one-shot résumé API."""

    status: str
    timestamp: datetime
