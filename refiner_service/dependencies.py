"""
Shared service instances for route handlers.

Each provider is cached so the whole process shares one session store and
one pooled language-model client. Tests swap them through
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from refiner.common.llm_client import LanguageModelClient, create_llm_client
from refiner.services.job_posting_fetcher import JobPostingFetcher
from refiner.services.refinement_service import RefinementService
from refiner.services.resume_service import ResumeService
from refiner.services.session_store import SessionStore

from .config import get_settings


@lru_cache()
def get_llm_client() -> LanguageModelClient:
    return create_llm_client(get_settings())


@lru_cache()
def get_session_store() -> SessionStore:
    settings = get_settings()
    return SessionStore(
        ttl_seconds=settings.session_ttl_seconds,
        max_sessions=settings.max_sessions,
    )


@lru_cache()
def get_job_posting_fetcher() -> JobPostingFetcher:
    settings = get_settings()
    return JobPostingFetcher(
        timeout_seconds=settings.job_fetch_timeout_seconds,
        use_browser=settings.job_fetch_use_browser,
    )


def get_refinement_service(
    llm: LanguageModelClient = Depends(get_llm_client),
    store: SessionStore = Depends(get_session_store),
) -> RefinementService:
    settings = get_settings()
    return RefinementService(
        llm,
        store,
        chat_history_window=settings.chat_history_window,
        generation_history_window=settings.generation_history_window,
    )


def get_resume_service(llm: LanguageModelClient = Depends(get_llm_client)) -> ResumeService:
    return ResumeService(llm)
