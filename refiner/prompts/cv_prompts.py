"""
Prompts for CV analysis, refinement chat, structured revision and résumé
generation.

Every prompt that expects structured output spells out the exact JSON
schema; replies are still decoded defensively because small local models
follow the schema only loosely.
"""

import json
from typing import List, Optional, Sequence

from refiner.common.types import ChatMessage, ParsedCvData, ResumeRequest


def language_instruction(language: str, purpose: str = "respond") -> str:
    """Instruction telling the model which language to write in."""
    if (language or "en").lower() == "da":
        if purpose == "analysis":
            return "Respond in Danish (dansk). Provide aiSummary and suggestedImprovements in Danish."
        if purpose == "resume":
            return "Generate the resume in Danish (dansk). Use Danish language for all text."
        return "Respond in Danish (dansk)."

    if purpose == "resume":
        return "Generate the resume in English."
    return "Respond in English."


def format_cv_data(data: ParsedCvData) -> str:
    """Serialize CV data as indented camelCase JSON for prompt embedding."""
    return json.dumps(data.model_dump(by_alias=True), indent=2, ensure_ascii=False)


def format_transcript(messages: Sequence[ChatMessage]) -> str:
    """Render transcript turns as ``role: content`` lines."""
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def format_job_context(target_job: Optional[str], job_description: Optional[str]) -> str:
    """Optional target-job context block."""
    lines = []
    if target_job:
        lines.append(f"Target Job: {target_job}")
    if job_description:
        lines.append(f"Job Description: {job_description}")
    return "\n".join(lines)


# ===== CV ANALYSIS =====

CV_SCHEMA = """{
    "fullName": "string or null",
    "email": "string or null",
    "phone": "string or null",
    "linkedIn": "string or null",
    "summary": "string or null",
    "workExperiences": [
        {
            "jobTitle": "string",
            "company": "string",
            "startDate": "string",
            "endDate": "string or null",
            "isCurrent": boolean,
            "responsibilities": ["string"]
        }
    ],
    "educations": [
        {
            "degree": "string",
            "institution": "string",
            "graduationYear": "string",
            "fieldOfStudy": "string or null"
        }
    ],
    "skills": ["string"]"""


def build_analysis_system_prompt(language: str) -> str:
    return f"""You are a professional CV/resume analyst. Analyze the provided CV text and extract structured information.
{language_instruction(language, "analysis")}

Respond with ONLY valid JSON in this exact format:
{CV_SCHEMA},
    "aiSummary": "A brief 2-3 sentence analysis of this CV's strengths",
    "suggestedImprovements": ["3-5 specific suggestions to improve this CV"]
}}"""


def build_analysis_user_prompt(cv_text: str) -> str:
    return f"Please analyze this CV and extract the information:\n\n{cv_text}"


# ===== REFINEMENT CHAT =====

def build_chat_system_prompt(
    cv_data: ParsedCvData,
    language: str,
    target_job: Optional[str] = None,
    job_description: Optional[str] = None,
) -> str:
    job_context = format_job_context(target_job, job_description)
    return f"""You are a helpful CV/resume improvement assistant. You're helping improve a CV.
{language_instruction(language)}

Current CV Data:
{format_cv_data(cv_data)}
{job_context}

Help the user improve their CV. You can:
1. Answer questions about their CV
2. Suggest improvements
3. Help rewrite sections
4. Tailor content for specific jobs

If the user asks you to make changes, describe what you would change.
If they ask to generate the final CV, tell them to click the "Generate Resume" button.

Be conversational and helpful. Keep responses concise but informative."""


# ===== STRUCTURED REVISION =====

def build_revision_system_prompt(
    cv_data: ParsedCvData,
    language: str,
    target_job: Optional[str] = None,
    job_description: Optional[str] = None,
) -> str:
    job_context = format_job_context(target_job, job_description)
    return f"""You are a professional CV editor. Apply the user's requested change to the CV data below and return the COMPLETE revised CV.
{language_instruction(language)}

Current CV Data:
{format_cv_data(cv_data)}
{job_context}

Rules:
- Keep every field that the user did not ask to change exactly as it is
- Never invent employers, degrees or dates
- The "message" field briefly explains what you changed, in the user's language

Respond with ONLY valid JSON in this exact format:
{{
    "message": "string",
    "cvData": {CV_SCHEMA}
    }}
}}"""


def build_revision_user_prompt(instruction: str, recent_turns: Sequence[ChatMessage]) -> str:
    history = format_transcript(recent_turns)
    context = f"Conversation so far:\n{history}\n\n" if history else ""
    return f"{context}Requested change: {instruction}\n\nRespond with JSON only."


# ===== RESUME GENERATION =====

RESUME_SCHEMA = """{
    "generatedSummary": "A compelling 3-4 sentence professional summary",
    "enhancedExperiences": [
        {
            "jobTitle": "string",
            "company": "string",
            "startDate": "string",
            "endDate": "string or null",
            "enhancedResponsibilities": ["Achievement-focused bullet points starting with action verbs"]
        }
    ],
    "existingSkills": ["Skills from the original CV"],
    "suggestedSkills": ["NEW skills to add that weren't in the original CV"],
    "keywords": ["ATS-optimized keywords for this resume"]
}"""


def build_resume_system_prompt(language: str) -> str:
    return f"""You are a professional resume writer. Generate an optimized, ATS-friendly resume based on the CV data provided.
{language_instruction(language, "resume")}

IMPORTANT: Respond with ONLY valid JSON in this exact format:
{RESUME_SCHEMA}

IMPORTANT for skills:
- existingSkills: Only include skills that were already in the CV
- suggestedSkills: Only include NEW skills the candidate should add based on target job
- Do NOT duplicate skills between existingSkills and suggestedSkills

Make responsibilities achievement-focused with metrics where possible.
Use strong action verbs (Led, Developed, Implemented, Increased, etc.)"""


def build_resume_user_prompt(
    cv_data: ParsedCvData,
    target_job: Optional[str],
    job_description: Optional[str],
    additional_instructions: Optional[str],
    template: str,
    recent_turns: Sequence[ChatMessage] = (),
) -> str:
    chat_context = ""
    if recent_turns:
        chat_context = (
            "\n\nConversation context (improvements discussed):\n"
            f"{format_transcript(recent_turns)}"
        )

    return f"""Generate an optimized resume from this CV data:

{format_cv_data(cv_data)}

Target Job: {target_job or "General professional role"}
Job Description: {job_description or "Not provided"}
Additional Instructions: {additional_instructions or "None"}
Template Style: {template}{chat_context}

Respond with JSON only."""


# ===== ONE-SHOT ENHANCEMENT (no session) =====

ENHANCE_SYSTEM_PROMPT = f"""You are a professional resume writer and career coach. Your task is to enhance resumes by:
1. Writing compelling professional summaries
2. Transforming job responsibilities into achievement-focused bullet points using action verbs
3. Suggesting relevant skills based on the target job
4. Identifying important keywords for ATS optimization

IMPORTANT: You must respond with ONLY valid JSON, no additional text before or after.
Use this exact structure:
{RESUME_SCHEMA}"""


def _format_form_experiences(request: ResumeRequest) -> str:
    if not request.work_experiences:
        return "None provided"

    blocks: List[str] = []
    for exp in request.work_experiences:
        end = "Present" if exp.is_current else (exp.end_date or "")
        bullets = "\n".join(f"- {r}" for r in exp.responsibilities)
        blocks.append(
            f"{exp.job_title} at {exp.company}\n"
            f"{exp.start_date} - {end}\n"
            f"Responsibilities:\n{bullets}"
        )
    return "\n\n".join(blocks)


def _format_form_education(request: ResumeRequest) -> str:
    if not request.educations:
        return "None provided"
    return "\n".join(
        f"- {edu.degree} in {edu.field_of_study or 'N/A'} from {edu.institution} ({edu.graduation_year})"
        for edu in request.educations
    )


def build_enhance_user_prompt(request: ResumeRequest) -> str:
    return f"""Please enhance the following resume information and respond with ONLY JSON:

Name: {request.full_name}
Current Summary: {request.summary or "Not provided"}
Target Job Title: {request.target_job_title or "Not specified"}
Target Job Description: {request.target_job_description or "Not provided"}

Work Experience:
{_format_form_experiences(request)}

Education:
{_format_form_education(request)}

Current Skills: {", ".join(request.skills)}

Respond with JSON only. Provide an enhanced version with a compelling summary, improved bullet points for each job, existing and suggested skills, and relevant keywords."""
