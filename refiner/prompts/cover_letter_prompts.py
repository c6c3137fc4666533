"""
Prompts for cover letter generation and revision.

The model returns the letter as three JSON fields (salutation, content,
closing) so that revisions can be applied without guessing where the
greeting ends and the body begins.
"""

from typing import Optional

from refiner.common.types import CoverLetter, ParsedCvData
from refiner.prompts.cv_prompts import format_cv_data


COVER_LETTER_SCHEMA = """{
    "salutation": "Dear Hiring Manager" or appropriate greeting,
    "content": "3-4 paragraphs of the cover letter body, formatted with \\n\\n between paragraphs",
    "closing": "Sincerely" or appropriate closing
}"""


def cover_letter_language_instruction(language: str) -> str:
    if (language or "en").lower() == "da":
        return "Write the cover letter in Danish (dansk). Use formal Danish business language."
    return "Write the cover letter in English. Use professional business English."


def build_cover_letter_system_prompt(language: str) -> str:
    return f"""You are a professional cover letter writer. Generate a compelling cover letter based on the CV data and job application.
{cover_letter_language_instruction(language)}

IMPORTANT: Respond with ONLY valid JSON in this exact format:
{COVER_LETTER_SCHEMA}

The cover letter should:
1. Open with enthusiasm for the specific role and company
2. Highlight 2-3 most relevant experiences from the CV
3. Explain why the candidate is a great fit for THIS specific job
4. Close with a call to action

Be professional but personable. Use specific examples from the CV."""


def build_cover_letter_user_prompt(
    cv_data: ParsedCvData,
    job_title: str,
    company_name: str,
    job_description: Optional[str],
) -> str:
    return f"""Generate a cover letter for this job application:

Job Title: {job_title}
Company: {company_name}
Job Description: {job_description or "Not provided"}

Candidate's CV Data:
{format_cv_data(cv_data)}

Respond with JSON only."""


def build_cover_letter_revision_system_prompt(language: str) -> str:
    return f"""You are a professional cover letter editor. Revise the cover letter below exactly as the user asks and return the COMPLETE revised letter.
{cover_letter_language_instruction(language)}

Keep everything the user did not ask to change. Never invent experience that is not in the CV data.

IMPORTANT: Respond with ONLY valid JSON in this exact format:
{COVER_LETTER_SCHEMA}"""


def build_cover_letter_revision_user_prompt(
    cv_data: ParsedCvData,
    cover_letter: CoverLetter,
    instruction: str,
) -> str:
    return f"""Current cover letter:

{cover_letter.salutation}

{cover_letter.content}

{cover_letter.closing}

Candidate's CV Data:
{format_cv_data(cv_data)}

Requested change: {instruction}

Respond with JSON only."""
