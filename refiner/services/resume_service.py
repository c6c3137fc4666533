"""
One-shot résumé enhancement from form data, without a session.
"""

import logging

from refiner.common.error_handling import InputValidationError, log_on_exception
from refiner.common.llm_client import LanguageModelClient
from refiner.common.types import GeneratedResume, ResumeRequest, split_skills
from refiner.prompts import ENHANCE_SYSTEM_PROMPT, build_enhance_user_prompt
from refiner.services.response_parser import parse_generated_resume

logger = logging.getLogger(__name__)


class ResumeService:
    """Enhances a form-entered résumé in a single model call."""

    def __init__(self, llm: LanguageModelClient):
        self.llm = llm

    async def generate(self, request: ResumeRequest) -> GeneratedResume:
        """
        Enhance the résumé described by ``request``.

        Raises:
            InputValidationError: If full name or email is blank
            UpstreamUnavailableError: If the model cannot be reached
        """
        if not request.full_name.strip() or not request.email.strip():
            raise InputValidationError("Full name and email are required.")

        logger.info(f"Generating resume for {request.full_name}")

        with log_on_exception(logger, "resume enhancement", level=logging.ERROR, include_traceback=True):
            raw = await self.llm.generate(ENHANCE_SYSTEM_PROMPT, build_enhance_user_prompt(request))

        resume = parse_generated_resume(raw)
        if resume is None:
            logger.warning("Resume reply held no JSON object; using raw text as summary")
            resume = GeneratedResume(generated_summary=raw.strip())

        existing, suggested = split_skills(
            resume.existing_skills, resume.suggested_skills, request.skills
        )
        return resume.model_copy(update={"existing_skills": existing, "suggested_skills": suggested})
