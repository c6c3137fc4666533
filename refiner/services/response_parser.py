"""
Typed decoding of language-model replies.

The model may omit, null or mistype any field. Decoders here coerce every
field to the typed model's default instead of raising, and report "no
object found" by returning None so the caller can choose its fallback.

Usage:
    analysis = parse_cv_analysis(raw_reply)
    if analysis is None:
        ...  # fallback
"""

import logging
from typing import Any, Dict, List, Optional

from refiner.common.json_utils import extract_first_json_object
from refiner.common.types import (
    CoverLetter,
    CvAnalysis,
    EnhancedWorkExperience,
    GeneratedResume,
    ParsedCvData,
    ParsedEducation,
    ParsedWorkExperience,
    RevisionResult,
)

logger = logging.getLogger(__name__)

DEFAULT_SALUTATION = "Dear Hiring Manager"
DEFAULT_CLOSING = "Sincerely"
PARAGRAPH_SEPARATOR = "\n\n"


# ===== Field coercion =====

def _get(obj: Dict[str, Any], key: str) -> Any:
    """Look up a key, falling back to a case-insensitive match."""
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for candidate, value in obj.items():
        if isinstance(candidate, str) and candidate.lower() == lowered:
            return value
    return None


def as_optional_str(value: Any) -> Optional[str]:
    """Scalar to stripped string; None, blanks and containers to None."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    return text


def as_str(value: Any, default: str = "") -> str:
    """Like as_optional_str, with a default for missing values."""
    text = as_optional_str(value)
    return default if text is None else text


def as_str_list(value: Any) -> List[str]:
    """List of non-blank strings; a lone string becomes a one-item list."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [text for text in (as_optional_str(item) for item in value) if text]


def as_bool(value: Any) -> bool:
    """Booleans, and the strings/numbers models use for them."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return False


def as_dict_list(value: Any) -> List[Dict[str, Any]]:
    """Objects from a list; a lone object becomes a one-item list."""
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


# ===== CV data =====

def decode_cv_data(raw: Dict[str, Any]) -> ParsedCvData:
    """Decode a camelCase CV object into ParsedCvData. Never raises."""
    experiences = [
        ParsedWorkExperience(
            job_title=as_optional_str(_get(exp, "jobTitle")),
            company=as_optional_str(_get(exp, "company")),
            start_date=as_optional_str(_get(exp, "startDate")),
            end_date=as_optional_str(_get(exp, "endDate")),
            is_current=as_bool(_get(exp, "isCurrent")),
            responsibilities=as_str_list(_get(exp, "responsibilities")),
        )
        for exp in as_dict_list(_get(raw, "workExperiences"))
    ]

    educations = [
        ParsedEducation(
            degree=as_optional_str(_get(edu, "degree")),
            institution=as_optional_str(_get(edu, "institution")),
            graduation_year=as_optional_str(_get(edu, "graduationYear")),
            field_of_study=as_optional_str(_get(edu, "fieldOfStudy")),
        )
        for edu in as_dict_list(_get(raw, "educations"))
    ]

    return ParsedCvData(
        full_name=as_optional_str(_get(raw, "fullName")),
        email=as_optional_str(_get(raw, "email")),
        phone=as_optional_str(_get(raw, "phone")),
        linked_in=as_optional_str(_get(raw, "linkedIn")),
        summary=as_optional_str(_get(raw, "summary")),
        work_experiences=experiences,
        educations=educations,
        skills=as_str_list(_get(raw, "skills")),
    )


def parse_cv_analysis(text: str) -> Optional[CvAnalysis]:
    """
    Decode the reply to the CV extraction prompt.

    Returns:
        CvAnalysis, or None if the reply holds no JSON object
    """
    raw = extract_first_json_object(text)
    if raw is None:
        logger.warning("Failed to parse CV analysis response as JSON")
        return None

    return CvAnalysis(
        parsed_data=decode_cv_data(raw),
        ai_summary=as_str(_get(raw, "aiSummary")),
        suggested_improvements=as_str_list(_get(raw, "suggestedImprovements")),
    )


# ===== Generated resume =====

def parse_generated_resume(text: str) -> Optional[GeneratedResume]:
    """
    Decode the reply to a résumé generation prompt.

    Skills disjointness is not enforced here; the caller owns that
    invariant because it depends on the session's original skills.

    Returns:
        GeneratedResume, or None if the reply holds no JSON object
    """
    raw = extract_first_json_object(text)
    if raw is None:
        logger.warning("Failed to parse resume response as JSON")
        return None

    experiences = [
        EnhancedWorkExperience(
            job_title=as_str(_get(exp, "jobTitle")),
            company=as_str(_get(exp, "company")),
            start_date=as_str(_get(exp, "startDate")),
            end_date=as_optional_str(_get(exp, "endDate")),
            enhanced_responsibilities=as_str_list(
                _get(exp, "enhancedResponsibilities") or _get(exp, "responsibilities")
            ),
        )
        for exp in as_dict_list(_get(raw, "enhancedExperiences"))
    ]

    return GeneratedResume(
        generated_summary=as_str(_get(raw, "generatedSummary")),
        enhanced_experiences=experiences,
        existing_skills=as_str_list(_get(raw, "existingSkills")),
        suggested_skills=as_str_list(_get(raw, "suggestedSkills")),
        keywords=as_str_list(_get(raw, "keywords")),
        template=as_str(_get(raw, "template"), default="modern"),
    )


# ===== Cover letter =====

def _as_body(value: Any) -> str:
    """Body text; a list of paragraphs is joined with blank lines."""
    if isinstance(value, list):
        return PARAGRAPH_SEPARATOR.join(as_str_list(value))
    return as_str(value)


def parse_cover_letter(text: str) -> Optional[CoverLetter]:
    """
    Decode a cover letter reply.

    Returns:
        CoverLetter, or None if no object was found or it has no body
    """
    raw = extract_first_json_object(text)
    if raw is None:
        logger.warning("Failed to parse cover letter response as JSON")
        return None

    content = _as_body(_get(raw, "content"))
    if not content:
        logger.warning("Cover letter response has no content")
        return None

    return CoverLetter(
        salutation=as_str(_get(raw, "salutation"), default=DEFAULT_SALUTATION),
        content=content,
        closing=as_str(_get(raw, "closing"), default=DEFAULT_CLOSING),
    )


def fallback_cover_letter(text: str) -> CoverLetter:
    """Degraded cover letter carrying the raw model text as its body."""
    return CoverLetter(
        salutation=DEFAULT_SALUTATION,
        content=(text or "").strip(),
        closing=DEFAULT_CLOSING,
    )


# ===== Structured revision =====

def parse_revision(text: str) -> Optional[RevisionResult]:
    """
    Decode a structured revision reply ``{"message": ..., "cvData": {...}}``.

    A reply without a ``cvData`` object is treated as not parseable: a
    revision must carry the complete record or nothing.

    Returns:
        RevisionResult with updated_data set, or None
    """
    raw = extract_first_json_object(text)
    if raw is None:
        logger.warning("Failed to parse revision response as JSON")
        return None

    cv_raw = _get(raw, "cvData")
    if not isinstance(cv_raw, dict):
        logger.warning("Revision response has no cvData object")
        return None

    return RevisionResult(
        message=as_str(_get(raw, "message"), default="CV updated."),
        updated_data=decode_cv_data(cv_raw),
    )
