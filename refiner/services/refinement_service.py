"""
Refinement Service - session-scoped CV refinement conversation.

Drives one user's upload-through-refinement flow:

1. upload: extract structured CV data from text and open a session
2. chat: free-text conversation about the CV, grounded in the current data
3. propose_revision: explicit structured edit that replaces the CV data
4. generate_resume / generate_cover_letter: artifacts built from the
   accumulated data and conversation
5. revise_cover_letter: structured edit of a generated cover letter
6. normalize_phone: explicit phone formatting step

Failure semantics:
- SessionNotFoundError is raised before any model call
- UpstreamUnavailableError from the model client propagates, never retried
- unparseable model output degrades to a fallback value, never raises
- cancellation propagates untouched

Usage:
    service = RefinementService(llm_client, SessionStore())
    upload = await service.upload(cv_text, language="en", country_code="DK")
    reply = await service.chat(upload.session_id, "Make my summary punchier")
    resume = await service.generate_resume(upload.session_id, target_job="Data Engineer")
"""

import logging
from typing import Optional

from refiner.common.error_handling import InputValidationError, log_on_exception
from refiner.common.llm_client import LanguageModelClient
from refiner.common.logger import get_logger
from refiner.common.phone import DEFAULT_COUNTRY_CODE, format_phone
from refiner.common.types import (
    ChatMessage,
    ChatResult,
    CoverLetter,
    CvSession,
    GeneratedResume,
    ParsedCvData,
    RevisionResult,
    UploadResult,
    split_skills,
)
from refiner.prompts import (
    build_analysis_system_prompt,
    build_analysis_user_prompt,
    build_chat_system_prompt,
    build_cover_letter_revision_system_prompt,
    build_cover_letter_revision_user_prompt,
    build_cover_letter_system_prompt,
    build_cover_letter_user_prompt,
    build_resume_system_prompt,
    build_resume_user_prompt,
    build_revision_system_prompt,
    build_revision_user_prompt,
    format_transcript,
)
from refiner.services.response_parser import (
    fallback_cover_letter,
    parse_cover_letter,
    parse_cv_analysis,
    parse_generated_resume,
    parse_revision,
)
from refiner.services.session_store import SessionStore

ANALYSIS_FALLBACK_SUMMARY = "Could not analyze CV"
CHAT_FALLBACK_REPLY = "I apologize, I couldn't process that request."
REVISION_FALLBACK_MESSAGE = (
    "I could not turn that into a concrete change to your CV. "
    "Your CV was left as it was; please try rephrasing the request."
)
DEFAULT_TEMPLATE = "modern"


def normalize_cv_phone(
    data: ParsedCvData,
    country_code: str,
    source_country_code: Optional[str] = None,
) -> ParsedCvData:
    """
    Return ``data`` with its phone number formatted for ``country_code``.

    ``source_country_code`` is the region the stored number was last
    formatted for; a national number is read with it, not the new region.
    """
    if not data.phone:
        return data
    formatted = format_phone(data.phone, country_code, source_country_code)
    if formatted == data.phone:
        return data
    return data.model_copy(update={"phone": formatted})


class RefinementService:
    """Orchestrates the refinement protocol on top of a session store."""

    def __init__(
        self,
        llm: LanguageModelClient,
        store: SessionStore,
        chat_history_window: int = 10,
        generation_history_window: int = 6,
    ):
        """
        Args:
            llm: Language-model client used for every model call
            store: Session store holding all conversation state
            chat_history_window: Transcript turns sent with chat and revision prompts
            generation_history_window: Transcript turns sent with résumé prompts
        """
        self.llm = llm
        self.store = store
        self.chat_history_window = chat_history_window
        self.generation_history_window = generation_history_window

    async def _generate(self, log, operation: str, system_prompt: str, user_prompt: str) -> str:
        with log_on_exception(log, operation, level=logging.ERROR, include_traceback=True):
            return await self.llm.generate(system_prompt, user_prompt)

    # ===== Ingestion =====

    async def upload(
        self,
        text: str,
        language: str = "en",
        country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> UploadResult:
        """
        Analyze CV text and open a new session for it.

        A reply that cannot be parsed still opens a session, with empty
        structured data, so the user can continue through chat.

        Raises:
            InputValidationError: If the text is blank
            UpstreamUnavailableError: If the model cannot be reached
        """
        if not text or not text.strip():
            raise InputValidationError("No text provided")

        log = get_logger(__name__, operation="upload")
        log.info(f"Analyzing CV text ({len(text)} chars, language={language})")

        raw = await self._generate(
            log,
            "cv analysis",
            build_analysis_system_prompt(language),
            build_analysis_user_prompt(text),
        )

        analysis = parse_cv_analysis(raw)
        if analysis is None:
            log.warning("Model reply held no JSON object; storing empty CV data")
            parsed_data = ParsedCvData()
            ai_summary = ANALYSIS_FALLBACK_SUMMARY
            suggestions = []
        else:
            parsed_data = analysis.parsed_data
            ai_summary = analysis.ai_summary
            suggestions = analysis.suggested_improvements

        parsed_data = normalize_cv_phone(parsed_data, country_code)
        session_id = self.store.create(text, parsed_data, language=language, country_code=country_code)

        log.session_id = session_id
        log.info(
            f"Session created: {len(parsed_data.work_experiences)} experiences, "
            f"{len(parsed_data.skills)} skills"
        )

        return UploadResult(
            session_id=session_id,
            extracted_text=text,
            parsed_data=parsed_data,
            ai_summary=ai_summary,
            suggested_improvements=suggestions,
        )

    # ===== Conversation =====

    async def chat(
        self,
        session_id: str,
        message: str,
        target_job: Optional[str] = None,
        job_description: Optional[str] = None,
        language: str = "en",
    ) -> ChatResult:
        """
        Answer one free-text chat turn.

        The user's message is appended before the model is called and stays
        in the transcript even if the call fails.

        Raises:
            SessionNotFoundError: If the session does not exist
            UpstreamUnavailableError: If the model cannot be reached
        """
        log = get_logger(__name__, session_id=session_id, operation="chat")

        session = self.store.touch_and_append(
            session_id, ChatMessage(role="user", content=message)
        )
        recent = session.chat_history[-self.chat_history_window:]
        log.info(f"Chat turn {len(session.chat_history)} ({len(recent)} turns in context)")

        raw = await self._generate(
            log,
            "chat",
            build_chat_system_prompt(session.parsed_data, language, target_job, job_description),
            format_transcript(recent),
        )

        reply = raw.strip() or CHAT_FALLBACK_REPLY
        self.store.touch_and_append(session_id, ChatMessage(role="assistant", content=reply))

        return ChatResult(
            message=reply,
            updated_cv_data=session.parsed_data,
            is_complete=False,
        )

    async def propose_revision(
        self,
        session_id: str,
        instruction: str,
        target_job: Optional[str] = None,
        job_description: Optional[str] = None,
        language: str = "en",
    ) -> RevisionResult:
        """
        Apply a requested change to the structured CV data.

        On success the session's data is replaced wholesale. If the reply
        cannot be decoded the data is left untouched and ``updated_data``
        is None. Both turns are recorded in the transcript either way.

        Raises:
            InputValidationError: If the instruction is blank
            SessionNotFoundError: If the session does not exist
            UpstreamUnavailableError: If the model cannot be reached
        """
        if not instruction or not instruction.strip():
            raise InputValidationError("Revision instruction is required")

        log = get_logger(__name__, session_id=session_id, operation="revise")

        session = self.store.get(session_id)
        recent = session.chat_history[-self.chat_history_window:]
        self.store.touch_and_append(session_id, ChatMessage(role="user", content=instruction))

        raw = await self._generate(
            log,
            "revision",
            build_revision_system_prompt(session.parsed_data, language, target_job, job_description),
            build_revision_user_prompt(instruction, recent),
        )

        revision = parse_revision(raw)
        if revision is None:
            log.warning("Revision reply could not be decoded; CV data unchanged")
            self.store.touch_and_append(
                session_id, ChatMessage(role="assistant", content=REVISION_FALLBACK_MESSAGE)
            )
            return RevisionResult(message=REVISION_FALLBACK_MESSAGE, updated_data=None)

        new_data = normalize_cv_phone(revision.updated_data, session.country_code)
        self.store.replace_data(session_id, new_data)
        self.store.touch_and_append(
            session_id, ChatMessage(role="assistant", content=revision.message)
        )
        log.info("CV data replaced from structured revision")

        return RevisionResult(message=revision.message, updated_data=new_data)

    # ===== Explicit normalization =====

    def normalize_phone(self, session_id: str, country_code: Optional[str] = None) -> Optional[str]:
        """
        Format the stored phone number for a region and store the result.

        Idempotent. The stored number is read with the session's current
        region, so a national number keeps its country; the target region
        then becomes the session's region. A number that does not parse is
        left as it is.

        Args:
            session_id: Session to update
            country_code: Region to format for (defaults to the session's)

        Returns:
            The stored phone number after formatting

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        region = (country_code or self.store.get(session_id).country_code).strip().upper()
        data = self.store.update_data(
            session_id,
            lambda current, stored_region: normalize_cv_phone(current, region, stored_region),
            country_code=region,
        )
        return data.phone

    # ===== Artifacts =====

    async def generate_resume(
        self,
        session_id: str,
        target_job: Optional[str] = None,
        job_description: Optional[str] = None,
        extra_instructions: Optional[str] = None,
        language: str = "en",
        country_code: Optional[str] = None,
        template: Optional[str] = None,
    ) -> GeneratedResume:
        """
        Generate an optimized résumé from the session's data and recent chat.

        Existing and suggested skills are always disjoint; existing skills
        fall back to the session's skills when the model returns none. The
        requested template always wins over the model's.

        Raises:
            SessionNotFoundError: If the session does not exist
            UpstreamUnavailableError: If the model cannot be reached
        """
        log = get_logger(__name__, session_id=session_id, operation="generate_resume")

        self.normalize_phone(session_id, country_code)
        session = self.store.get(session_id)
        recent = session.chat_history[-self.generation_history_window:]
        template = template or DEFAULT_TEMPLATE

        log.info(f"Generating resume (template={template}, {len(recent)} turns of context)")

        raw = await self._generate(
            log,
            "resume generation",
            build_resume_system_prompt(language),
            build_resume_user_prompt(
                session.parsed_data,
                target_job,
                job_description,
                extra_instructions,
                template,
                recent,
            ),
        )

        resume = parse_generated_resume(raw)
        if resume is None:
            log.warning("Resume reply held no JSON object; using raw text as summary")
            resume = GeneratedResume(generated_summary=raw.strip())

        existing, suggested = split_skills(
            resume.existing_skills, resume.suggested_skills, session.parsed_data.skills
        )
        return resume.model_copy(
            update={
                "existing_skills": existing,
                "suggested_skills": suggested,
                "template": template,
            }
        )

    async def generate_cover_letter(
        self,
        session_id: str,
        job_title: str,
        company_name: str,
        job_description: Optional[str] = None,
        language: str = "en",
    ) -> CoverLetter:
        """
        Write a cover letter for a job application.

        Raises:
            InputValidationError: If job title or company name is blank
            SessionNotFoundError: If the session does not exist
            UpstreamUnavailableError: If the model cannot be reached
        """
        if not (job_title or "").strip() or not (company_name or "").strip():
            raise InputValidationError("Session ID, job title, and company name are required")

        log = get_logger(__name__, session_id=session_id, operation="cover_letter")

        session = self.store.get(session_id)
        self.store.touch(session_id)
        log.info(f"Generating cover letter for {job_title} at {company_name}")

        raw = await self._generate(
            log,
            "cover letter generation",
            build_cover_letter_system_prompt(language),
            build_cover_letter_user_prompt(session.parsed_data, job_title, company_name, job_description),
        )

        letter = parse_cover_letter(raw)
        if letter is None:
            log.warning("Cover letter reply could not be decoded; using raw text")
            return fallback_cover_letter(raw)
        return letter

    async def revise_cover_letter(
        self,
        session_id: str,
        cover_letter: CoverLetter,
        instruction: str,
        language: str = "en",
    ) -> CoverLetter:
        """
        Apply a requested change to a generated cover letter.

        The given letter is returned unchanged if the reply cannot be decoded.

        Raises:
            InputValidationError: If the instruction is blank
            SessionNotFoundError: If the session does not exist
            UpstreamUnavailableError: If the model cannot be reached
        """
        if not instruction or not instruction.strip():
            raise InputValidationError("Revision instruction is required")

        log = get_logger(__name__, session_id=session_id, operation="revise_cover_letter")

        session = self.store.get(session_id)
        self.store.touch(session_id)

        raw = await self._generate(
            log,
            "cover letter revision",
            build_cover_letter_revision_system_prompt(language),
            build_cover_letter_revision_user_prompt(session.parsed_data, cover_letter, instruction),
        )

        revised = parse_cover_letter(raw)
        if revised is None:
            log.warning("Cover letter revision could not be decoded; keeping previous letter")
            return cover_letter
        return revised

    # ===== Queries =====

    def get_session(self, session_id: str) -> CvSession:
        """
        Return a snapshot of the session.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        return self.store.get(session_id)
