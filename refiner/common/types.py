"""
Canonical types for the CV refiner.

Structured CV data, the artifacts generated from it, and the session that
accumulates a refinement conversation. All models serialize with camelCase
aliases (``fullName``, ``workExperiences``) which is the wire format of the
HTTP API and of the JSON the language model is asked to produce.
"""

from datetime import datetime
from typing import Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def dedupe_skills(skills: Iterable[str]) -> List[str]:
    """
    Remove case-insensitive duplicates, keeping the first spelling seen.

    Blank entries are dropped and surrounding whitespace is stripped.
    """
    seen = set()
    result = []
    for skill in skills:
        if not isinstance(skill, str):
            continue
        cleaned = skill.strip()
        key = cleaned.casefold()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result


def split_skills(
    existing: Iterable[str],
    suggested: Iterable[str],
    original: Iterable[str],
) -> Tuple[List[str], List[str]]:
    """
    Re-derive the (existing, suggested) skills partition of a résumé.

    ``existing`` falls back to ``original`` when the model returned none.
    Suggested skills already present in ``existing`` are removed under
    case-insensitive comparison.
    """
    existing_skills = dedupe_skills(existing) or dedupe_skills(original)
    taken = {skill.casefold() for skill in existing_skills}
    suggested_skills = [
        skill for skill in dedupe_skills(suggested) if skill.casefold() not in taken
    ]
    return existing_skills, suggested_skills


class CamelModel(BaseModel):
    """Base model serialized with camelCase field aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# === Structured CV data ===

class ParsedWorkExperience(CamelModel):
    """One position extracted from a CV."""

    job_title: Optional[str] = None
    company: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_current: bool = False
    responsibilities: List[str] = Field(default_factory=list)

    @property
    def display_end_date(self) -> Optional[str]:
        """End date for display; ``is_current`` wins over a stale end date."""
        if self.is_current:
            return "Present"
        return self.end_date


class ParsedEducation(CamelModel):
    """One education entry extracted from a CV."""

    degree: Optional[str] = None
    institution: Optional[str] = None
    graduation_year: Optional[str] = None
    field_of_study: Optional[str] = None


class ParsedCvData(CamelModel):
    """
    Structured decomposition of a résumé.

    Always a complete record: sessions replace it wholesale and never
    merge fields from a failed parse.
    """

    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linked_in: Optional[str] = None
    summary: Optional[str] = None
    work_experiences: List[ParsedWorkExperience] = Field(default_factory=list)
    educations: List[ParsedEducation] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)

    @field_validator("skills")
    @classmethod
    def unique_skills(cls, v: List[str]) -> List[str]:
        """Skills form a case-insensitive set in first-seen order."""
        return dedupe_skills(v)

    def is_empty(self) -> bool:
        """True when nothing was extracted."""
        return self == ParsedCvData()


class ChatMessage(CamelModel):
    """One transcript turn."""

    role: Literal["user", "assistant"]
    content: str


# === Generated artifacts ===

class EnhancedWorkExperience(CamelModel):
    """A position with model-rewritten responsibility bullets."""

    job_title: str = ""
    company: str = ""
    start_date: str = ""
    end_date: Optional[str] = None
    enhanced_responsibilities: List[str] = Field(default_factory=list)


class GeneratedResume(CamelModel):
    """
    AI-produced résumé.

    ``suggested_skills`` never overlaps ``existing_skills`` under
    case-insensitive comparison; the refinement service re-derives this
    after every parse instead of trusting the model.
    """

    generated_summary: str = ""
    enhanced_experiences: List[EnhancedWorkExperience] = Field(default_factory=list)
    existing_skills: List[str] = Field(default_factory=list)
    suggested_skills: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    template: str = "modern"


class CoverLetter(CamelModel):
    """Cover letter split into salutation, body and closing."""

    salutation: str = "Dear Hiring Manager"
    content: str = ""
    closing: str = "Sincerely"


# === Operation results ===

class CvAnalysis(CamelModel):
    """Decoded reply to the CV extraction prompt."""

    parsed_data: ParsedCvData = Field(default_factory=ParsedCvData)
    ai_summary: str = ""
    suggested_improvements: List[str] = Field(default_factory=list)


class UploadResult(CamelModel):
    """Outcome of ingesting a CV into a new session."""

    session_id: str
    extracted_text: str
    parsed_data: ParsedCvData
    ai_summary: str
    suggested_improvements: List[str] = Field(default_factory=list)


class ChatResult(CamelModel):
    """Assistant reply to a chat turn."""

    message: str
    updated_cv_data: Optional[ParsedCvData] = None
    is_complete: bool = False


class RevisionResult(CamelModel):
    """
    Outcome of an explicit structured revision request.

    ``updated_data`` is None when the model reply could not be decoded and
    the session data was left untouched.
    """

    message: str
    updated_data: Optional[ParsedCvData] = None


class JobPostingResult(CamelModel):
    """Job posting scraped from a URL, or the reason it could not be."""

    is_success: bool = False
    job_title: str = ""
    company_name: str = ""
    description: str = ""
    error_message: str = ""

    @classmethod
    def success(cls, job_title: str, company_name: str, description: str) -> "JobPostingResult":
        return cls(
            is_success=True,
            job_title=job_title,
            company_name=company_name,
            description=description,
        )

    @classmethod
    def error(cls, error_message: str) -> "JobPostingResult":
        return cls(is_success=False, error_message=error_message)


# === Sessions ===

class CvSession(CamelModel):
    """
    Server-held state of one upload-through-refinement conversation.

    Instances handed out by the session store are snapshots; mutating them
    has no effect on the stored session.
    """

    id: str
    original_text: str
    parsed_data: ParsedCvData
    chat_history: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime
    last_activity_at: datetime
    language: str = "en"
    country_code: str = "DK"

    @property
    def state(self) -> Literal["created", "refining"]:
        """Derived conversation state; sessions never lock."""
        return "refining" if self.chat_history else "created"


# === Sessionless enhancement ===

class WorkExperienceInput(CamelModel):
    """Work experience entered through the résumé form."""

    job_title: str = ""
    company: str = ""
    start_date: str = ""
    end_date: Optional[str] = None
    is_current: bool = False
    responsibilities: List[str] = Field(default_factory=list)


class EducationInput(CamelModel):
    """Education entry entered through the résumé form."""

    degree: str = ""
    institution: str = ""
    graduation_year: str = ""
    field_of_study: Optional[str] = None


class ResumeRequest(CamelModel):
    """Form-based résumé data for one-shot enhancement without a session."""

    full_name: str = ""
    email: str = ""
    phone: Optional[str] = None
    linked_in: Optional[str] = None
    summary: Optional[str] = None
    work_experiences: List[WorkExperienceInput] = Field(default_factory=list)
    educations: List[EducationInput] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    target_job_title: Optional[str] = None
    target_job_description: Optional[str] = None
