"""
Unit tests for refiner/services/refinement_service.py

Tests the refinement protocol against a scripted language model:
- Upload (parse success, prose-only fallback, phone normalization)
- Chat (durability of the user turn, recency window)
- Structured revision (wholesale replace or untouched)
- Résumé generation (skills disjointness, template stamp, idempotent shape)
- Cover letters (fallback, structured revision)
- Unknown sessions never reach the model
"""

import asyncio
import json

import pytest

from refiner.common.error_handling import (
    InputValidationError,
    SessionNotFoundError,
    UpstreamUnavailableError,
)
from refiner.common.types import ChatMessage, CoverLetter, ParsedCvData
from refiner.services.refinement_service import (
    ANALYSIS_FALLBACK_SUMMARY,
    REVISION_FALLBACK_MESSAGE,
    RefinementService,
    normalize_cv_phone,
)
from refiner.services.session_store import SessionStore


CV_TEXT = "Jane Doe\njane@x.com\n+45 20123456"

ANALYSIS_REPLY = json.dumps({
    "fullName": "Jane Doe",
    "email": "jane@x.com",
    "phone": "+45 20123456",
    "workExperiences": [{"jobTitle": "Developer", "company": "Acme", "startDate": "2020"}],
    "skills": ["Python", "SQL", "python"],
    "aiSummary": "Solid developer profile.",
    "suggestedImprovements": ["Quantify achievements"],
})

RESUME_REPLY = json.dumps({
    "generatedSummary": "Results-driven developer.",
    "enhancedExperiences": [{
        "jobTitle": "Developer",
        "company": "Acme",
        "startDate": "2020",
        "enhancedResponsibilities": ["Cut latency by 40%"],
    }],
    "existingSkills": ["Python", "SQL"],
    "suggestedSkills": ["python", "Docker", "sql", "Kubernetes", "docker"],
    "keywords": ["backend"],
    "template": "model-picked",
})


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def service(llm, store):
    return RefinementService(llm, store, chat_history_window=4, generation_history_window=2)


async def _uploaded(service, llm, reply=ANALYSIS_REPLY):
    llm.queue(reply)
    return await service.upload(CV_TEXT, language="en", country_code="DK")


# ===== TESTS: Upload =====

class TestUpload:
    """Tests for CV ingestion."""

    @pytest.mark.asyncio
    async def test_upload_creates_session(self, service, llm, store):
        """The session holds the original text and parsed data."""
        result = await _uploaded(service, llm)

        assert result.session_id
        assert result.extracted_text == CV_TEXT
        assert result.ai_summary == "Solid developer profile."
        assert result.suggested_improvements == ["Quantify achievements"]

        session = store.get(result.session_id)
        assert session.original_text == CV_TEXT
        assert session.parsed_data == result.parsed_data
        assert session.state == "created"

    @pytest.mark.asyncio
    async def test_upload_normalizes_danish_phone(self, service, llm):
        """A DK number is stored in grouped national format."""
        result = await _uploaded(service, llm)
        assert result.parsed_data.phone == "20 12 34 56"

    @pytest.mark.asyncio
    async def test_upload_dedupes_skills(self, service, llm):
        """Parsed skills are unique case-insensitively."""
        result = await _uploaded(service, llm)
        assert result.parsed_data.skills == ["Python", "SQL"]

    @pytest.mark.asyncio
    async def test_upload_prompt_carries_text_and_language(self, service, llm):
        """The extraction prompt embeds the CV and the response language."""
        llm.queue(ANALYSIS_REPLY)
        await service.upload(CV_TEXT, language="da", country_code="DK")

        system_prompt, user_prompt = llm.calls[0]
        assert "Danish" in system_prompt
        assert '"fullName"' in system_prompt
        assert CV_TEXT in user_prompt

    @pytest.mark.asyncio
    async def test_reply_without_json_still_creates_session(self, service, llm, store):
        """No '{' in the reply: empty data, fallback summary, usable session."""
        result = await _uploaded(service, llm, reply="Sorry, I cannot read this CV.")

        assert result.parsed_data == ParsedCvData()
        assert result.ai_summary == ANALYSIS_FALLBACK_SUMMARY
        assert result.suggested_improvements == []
        assert store.get(result.session_id).original_text == CV_TEXT

    @pytest.mark.asyncio
    async def test_fenced_reply(self, service, llm):
        """A fenced reply with prose parses the object inside."""
        result = await _uploaded(service, llm, reply='Sure! ```json\n{"fullName":"A"}\n```')
        assert result.parsed_data == ParsedCvData(full_name="A")

    @pytest.mark.asyncio
    async def test_blank_text_rejected_before_model_call(self, service, llm):
        """Blank input never reaches the model."""
        with pytest.raises(InputValidationError):
            await service.upload("   ")
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_upstream_failure_creates_no_session(self, service, llm, store):
        """Transport failures propagate and leave no session behind."""
        llm.queue(UpstreamUnavailableError("connection refused"))

        with pytest.raises(UpstreamUnavailableError):
            await service.upload(CV_TEXT)
        assert len(store) == 0


# ===== TESTS: Chat =====

class TestChat:
    """Tests for free-text chat turns."""

    @pytest.mark.asyncio
    async def test_chat_appends_both_turns(self, service, llm, store):
        """The reply is returned as text and both turns are recorded."""
        upload = await _uploaded(service, llm)
        llm.queue("  Consider adding metrics.  ")

        result = await service.chat(upload.session_id, "How can I improve?")

        assert result.message == "Consider adding metrics."
        assert result.is_complete is False
        assert result.updated_cv_data == upload.parsed_data

        history = store.get(upload.session_id).chat_history
        assert [(m.role, m.content) for m in history] == [
            ("user", "How can I improve?"),
            ("assistant", "Consider adding metrics."),
        ]

    @pytest.mark.asyncio
    async def test_chat_prompt_embeds_data_and_job(self, service, llm):
        """The system prompt carries the current data and target job."""
        upload = await _uploaded(service, llm)
        llm.queue("ok")

        await service.chat(upload.session_id, "Hi", target_job="Data Engineer", job_description="Spark")

        system_prompt, user_prompt = llm.calls[-1]
        assert "Jane Doe" in system_prompt
        assert "Target Job: Data Engineer" in system_prompt
        assert "Job Description: Spark" in system_prompt
        assert user_prompt == "user: Hi"

    @pytest.mark.asyncio
    async def test_chat_sends_recent_window_only(self, service, llm):
        """Only the last N turns are sent as the prompt body."""
        upload = await _uploaded(service, llm)
        for i in range(3):
            llm.queue(f"reply {i}")
            await service.chat(upload.session_id, f"message {i}")

        llm.queue("final")
        await service.chat(upload.session_id, "message 3")

        _, user_prompt = llm.calls[-1]
        assert user_prompt.splitlines() == [
            "user: message 1",
            "assistant: reply 1",
            "user: message 2",
            "assistant: reply 2",
            "user: message 3",
        ][-4:]

    @pytest.mark.asyncio
    async def test_user_turn_survives_model_failure(self, service, llm, store):
        """The user's message stays even if the model call fails."""
        upload = await _uploaded(service, llm)
        llm.queue(UpstreamUnavailableError("timed out"))

        with pytest.raises(UpstreamUnavailableError):
            await service.chat(upload.session_id, "Please help")

        history = store.get(upload.session_id).chat_history
        assert [(m.role, m.content) for m in history] == [("user", "Please help")]

    @pytest.mark.asyncio
    async def test_cancelled_chat_keeps_user_turn(self, service, llm, store):
        """Cancellation propagates untouched and is not converted to an error."""
        upload = await _uploaded(service, llm)
        llm.queue(asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await service.chat(upload.session_id, "Still there?")

        assert len(store.get(upload.session_id).chat_history) == 1

    @pytest.mark.asyncio
    async def test_empty_reply_gets_apology(self, service, llm):
        """A blank reply is replaced with a fallback message."""
        upload = await _uploaded(service, llm)
        llm.queue("   ")

        result = await service.chat(upload.session_id, "Hi")
        assert "couldn't process" in result.message


# ===== TESTS: Structured Revision =====

class TestProposeRevision:
    """Tests for explicit structured revisions."""

    @pytest.mark.asyncio
    async def test_successful_revision_replaces_data(self, service, llm, store):
        """A decoded revision replaces the data wholesale."""
        upload = await _uploaded(service, llm)
        llm.queue(json.dumps({
            "message": "Added a LinkedIn profile.",
            "cvData": {
                "fullName": "Jane Doe",
                "phone": "+4520123456",
                "linkedIn": "linkedin.com/in/jane",
                "skills": ["Python"],
            },
        }))

        result = await service.propose_revision(upload.session_id, "Add my LinkedIn")

        assert result.message == "Added a LinkedIn profile."
        assert result.updated_data.linked_in == "linkedin.com/in/jane"
        assert result.updated_data.phone == "20 12 34 56"

        session = store.get(upload.session_id)
        assert session.parsed_data == result.updated_data
        # Fields absent from the revision are gone: replacement, not merge
        assert session.parsed_data.email is None
        assert [m.role for m in session.chat_history] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_unparseable_revision_leaves_data(self, service, llm, store):
        """A reply without an object changes nothing."""
        upload = await _uploaded(service, llm)
        llm.queue("I updated your CV!")

        result = await service.propose_revision(upload.session_id, "Shorten the summary")

        assert result.updated_data is None
        assert result.message == REVISION_FALLBACK_MESSAGE
        assert store.get(upload.session_id).parsed_data == upload.parsed_data

    @pytest.mark.asyncio
    async def test_revision_prompt_requests_structured_reply(self, service, llm):
        """The revision prompt asks for message + cvData JSON."""
        upload = await _uploaded(service, llm)
        llm.queue("{}")

        await service.propose_revision(upload.session_id, "Fix typos")

        system_prompt, user_prompt = llm.calls[-1]
        assert '"cvData"' in system_prompt
        assert "Requested change: Fix typos" in user_prompt

    @pytest.mark.asyncio
    async def test_blank_instruction(self, service, llm):
        """Blank instructions are rejected before any I/O."""
        with pytest.raises(InputValidationError):
            await service.propose_revision("any", " ")
        assert llm.call_count == 0


# ===== TESTS: Phone Normalization =====

class TestNormalizePhone:
    """Tests for the explicit normalization step."""

    def test_normalize_cv_phone_without_phone(self):
        """Data without a phone is returned as-is."""
        data = ParsedCvData(full_name="A")
        assert normalize_cv_phone(data, "DK") is data

    @pytest.mark.asyncio
    async def test_normalize_for_other_region(self, service, store):
        """A prefixed DK number normalized for US keeps its prefix."""
        session_id = store.create("text", ParsedCvData(phone="+4520123456"))

        phone = service.normalize_phone(session_id, "US")

        assert phone == "+45 20 12 34 56"
        assert store.get(session_id).parsed_data.phone == "+45 20 12 34 56"

    @pytest.mark.asyncio
    async def test_defaults_to_session_region(self, service, store):
        """Without a region the session's country code is used."""
        session_id = store.create("text", ParsedCvData(phone="+4520123456"), country_code="DK")
        assert service.normalize_phone(session_id) == "20 12 34 56"

    @pytest.mark.asyncio
    async def test_normalize_is_idempotent(self, service, llm):
        """Normalizing twice gives the same result."""
        upload = await _uploaded(service, llm)
        first = service.normalize_phone(upload.session_id)
        second = service.normalize_phone(upload.session_id)
        assert first == second == "20 12 34 56"

    @pytest.mark.asyncio
    async def test_national_number_keeps_its_country(self, service, llm, store):
        """A stored national DK number formatted for SE stays Danish."""
        upload = await _uploaded(service, llm)
        assert store.get(upload.session_id).parsed_data.phone == "20 12 34 56"

        phone = service.normalize_phone(upload.session_id, "SE")

        session = store.get(upload.session_id)
        assert phone == "+45 20 12 34 56"
        assert session.parsed_data.phone == "+45 20 12 34 56"
        assert session.country_code == "SE"

    @pytest.mark.asyncio
    async def test_round_trip_between_regions(self, service, llm):
        """Switching regions and back restores the national form."""
        upload = await _uploaded(service, llm)

        service.normalize_phone(upload.session_id, "DE")
        assert service.normalize_phone(upload.session_id, "se") == "+45 20 12 34 56"
        assert service.normalize_phone(upload.session_id, "DK") == "20 12 34 56"

    def test_unknown_session(self, service):
        """Unknown sessions raise."""
        with pytest.raises(SessionNotFoundError):
            service.normalize_phone("missing", "DK")


# ===== TESTS: Résumé Generation =====

class TestGenerateResume:
    """Tests for résumé generation."""

    @pytest.mark.asyncio
    async def test_skills_are_disjoint(self, service, llm):
        """Suggested skills never repeat existing ones, even if the model does."""
        upload = await _uploaded(service, llm)
        llm.queue(RESUME_REPLY)

        resume = await service.generate_resume(upload.session_id, target_job="Backend Engineer")

        existing = {s.casefold() for s in resume.existing_skills}
        suggested = {s.casefold() for s in resume.suggested_skills}
        assert existing & suggested == set()
        assert resume.suggested_skills == ["Docker", "Kubernetes"]

    @pytest.mark.asyncio
    async def test_template_is_stamped(self, service, llm):
        """The requested template overrides the model's."""
        upload = await _uploaded(service, llm)
        llm.queue(RESUME_REPLY, RESUME_REPLY)

        stamped = await service.generate_resume(upload.session_id, template="classic")
        default = await service.generate_resume(upload.session_id)

        assert stamped.template == "classic"
        assert default.template == "modern"

    @pytest.mark.asyncio
    async def test_existing_skills_fall_back_to_session(self, service, llm):
        """When the model lists no existing skills, the session's are used."""
        upload = await _uploaded(service, llm)
        llm.queue(json.dumps({"generatedSummary": "x", "suggestedSkills": ["sql", "Rust"]}))

        resume = await service.generate_resume(upload.session_id)

        assert resume.existing_skills == ["Python", "SQL"]
        assert resume.suggested_skills == ["Rust"]

    @pytest.mark.asyncio
    async def test_identical_replies_give_identical_resumes(self, service, llm):
        """Same arguments and same model text yield equal results."""
        upload = await _uploaded(service, llm)
        llm.queue(RESUME_REPLY, RESUME_REPLY)

        first = await service.generate_resume(upload.session_id, "Dev", "Build APIs", "Be brief")
        second = await service.generate_resume(upload.session_id, "Dev", "Build APIs", "Be brief")

        assert first == second

    @pytest.mark.asyncio
    async def test_unparseable_reply_uses_raw_text(self, service, llm):
        """A reply without an object becomes the summary."""
        upload = await _uploaded(service, llm)
        llm.queue("A great developer.")

        resume = await service.generate_resume(upload.session_id)

        assert resume.generated_summary == "A great developer."
        assert resume.existing_skills == ["Python", "SQL"]
        assert resume.suggested_skills == []

    @pytest.mark.asyncio
    async def test_prompt_carries_recent_turns(self, service, llm, store):
        """Only the last generation-window turns are sent as context."""
        upload = await _uploaded(service, llm)
        for text in ["one", "two", "three"]:
            store.touch_and_append(upload.session_id, ChatMessage(role="user", content=text))
        llm.queue(RESUME_REPLY)

        await service.generate_resume(upload.session_id, extra_instructions="Keep it short")

        _, user_prompt = llm.calls[-1]
        assert "user: two" in user_prompt
        assert "user: three" in user_prompt
        assert "user: one" not in user_prompt
        assert "Additional Instructions: Keep it short" in user_prompt

    @pytest.mark.asyncio
    async def test_phone_normalized_even_if_model_fails(self, service, llm, store):
        """Normalization runs before, and independently of, the model call."""
        session_id = store.create("text", ParsedCvData(phone="+4520123456"))
        llm.queue(UpstreamUnavailableError("down"))

        with pytest.raises(UpstreamUnavailableError):
            await service.generate_resume(session_id, country_code="US")

        assert store.get(session_id).parsed_data.phone == "+45 20 12 34 56"

    @pytest.mark.asyncio
    async def test_generate_for_other_region_keeps_danish_number(self, service, llm, store):
        """Generating for SE from a DK session stores the number internationally."""
        upload = await _uploaded(service, llm)
        llm.queue(RESUME_REPLY)

        await service.generate_resume(upload.session_id, country_code="SE")

        session = store.get(upload.session_id)
        assert session.parsed_data.phone == "+45 20 12 34 56"
        assert session.country_code == "SE"


# ===== TESTS: Cover Letters =====

class TestCoverLetter:
    """Tests for cover letter generation and revision."""

    @pytest.mark.asyncio
    async def test_generate_cover_letter(self, service, llm):
        """A decoded letter is returned as-is."""
        upload = await _uploaded(service, llm)
        llm.queue('{"salutation": "Dear Team", "content": "I am thrilled.", "closing": "Kind regards"}')

        letter = await service.generate_cover_letter(upload.session_id, "Dev", "Acme", "Build APIs")

        assert letter == CoverLetter(salutation="Dear Team", content="I am thrilled.", closing="Kind regards")
        system_prompt, user_prompt = llm.calls[-1]
        assert "Company: Acme" in user_prompt
        assert "Jane Doe" in user_prompt

    @pytest.mark.asyncio
    async def test_cover_letter_fallback(self, service, llm):
        """Unparseable replies degrade to the raw text with generic framing."""
        upload = await _uploaded(service, llm)
        llm.queue("I am excited to apply for this role.")

        letter = await service.generate_cover_letter(upload.session_id, "Dev", "Acme")

        assert letter.salutation == "Dear Hiring Manager"
        assert letter.content == "I am excited to apply for this role."
        assert letter.closing == "Sincerely"

    @pytest.mark.asyncio
    async def test_required_fields(self, service, llm):
        """Job title and company are required."""
        with pytest.raises(InputValidationError):
            await service.generate_cover_letter("any", "", "Acme")
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_revise_cover_letter(self, service, llm):
        """A decoded revision replaces the letter."""
        upload = await _uploaded(service, llm)
        original = CoverLetter(content="Long letter.")
        llm.queue('{"salutation": "Dear Hiring Manager", "content": "Short letter.", "closing": "Sincerely"}')

        revised = await service.revise_cover_letter(upload.session_id, original, "Make it shorter")

        assert revised.content == "Short letter."
        _, user_prompt = llm.calls[-1]
        assert "Long letter." in user_prompt
        assert "Requested change: Make it shorter" in user_prompt

    @pytest.mark.asyncio
    async def test_revise_cover_letter_keeps_original_on_failure(self, service, llm):
        """An unparseable revision returns the letter unchanged."""
        upload = await _uploaded(service, llm)
        original = CoverLetter(content="Long letter.")
        llm.queue("Here is a shorter version: Short letter.")

        revised = await service.revise_cover_letter(upload.session_id, original, "Shorter")

        assert revised == original


# ===== TESTS: Unknown Sessions =====

class TestUnknownSession:
    """Operations on a fabricated session id never call the model."""

    @pytest.mark.asyncio
    async def test_chat(self, service, llm):
        with pytest.raises(SessionNotFoundError):
            await service.chat("fabricated", "Hi")
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_generate_resume(self, service, llm):
        with pytest.raises(SessionNotFoundError):
            await service.generate_resume("fabricated")
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_generate_cover_letter(self, service, llm):
        with pytest.raises(SessionNotFoundError):
            await service.generate_cover_letter("fabricated", "Dev", "Acme")
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_propose_revision(self, service, llm):
        with pytest.raises(SessionNotFoundError):
            await service.propose_revision("fabricated", "Fix it")
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_revise_cover_letter(self, service, llm):
        with pytest.raises(SessionNotFoundError):
            await service.revise_cover_letter("fabricated", CoverLetter(content="x"), "Shorter")
        assert llm.call_count == 0

    def test_get_session(self, service):
        with pytest.raises(SessionNotFoundError):
            service.get_session("fabricated")
