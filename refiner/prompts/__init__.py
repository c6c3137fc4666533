"""
Prompts for the CV refiner.

Each prompt module provides system and user prompts for one operation:
- cv_prompts: CV analysis, refinement chat, structured revision, résumé generation
- cover_letter_prompts: cover letter generation and revision
"""

from refiner.prompts.cover_letter_prompts import (
    build_cover_letter_revision_system_prompt,
    build_cover_letter_revision_user_prompt,
    build_cover_letter_system_prompt,
    build_cover_letter_user_prompt,
)
from refiner.prompts.cv_prompts import (
    ENHANCE_SYSTEM_PROMPT,
    build_analysis_system_prompt,
    build_analysis_user_prompt,
    build_chat_system_prompt,
    build_enhance_user_prompt,
    build_resume_system_prompt,
    build_resume_user_prompt,
    build_revision_system_prompt,
    build_revision_user_prompt,
    format_transcript,
)

__all__ = [
    "ENHANCE_SYSTEM_PROMPT",
    "build_analysis_system_prompt",
    "build_analysis_user_prompt",
    "build_chat_system_prompt",
    "build_cover_letter_revision_system_prompt",
    "build_cover_letter_revision_user_prompt",
    "build_cover_letter_system_prompt",
    "build_cover_letter_user_prompt",
    "build_enhance_user_prompt",
    "build_resume_system_prompt",
    "build_resume_user_prompt",
    "build_revision_system_prompt",
    "build_revision_user_prompt",
    "format_transcript",
]
