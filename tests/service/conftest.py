"""
Pytest fixtures for the CV refiner HTTP API tests.

Every test gets a fresh session store and a scripted language model wired
in through ``app.dependency_overrides``.
"""

import pytest
from fastapi.testclient import TestClient

from refiner.common.types import JobPostingResult
from refiner.services.session_store import SessionStore


class FakeJobPostingFetcher:
    """Returns a canned result and records requested URLs."""

    def __init__(self, result: JobPostingResult):
        self.result = result
        self.urls = []

    async def fetch(self, url: str) -> JobPostingResult:
        self.urls.append(url)
        return self.result

    async def aclose(self) -> None:
        pass


@pytest.fixture
def store(clock):
    return SessionStore(ttl_seconds=3600, max_sessions=10, clock=clock)


@pytest.fixture
def fetcher():
    return FakeJobPostingFetcher(
        JobPostingResult.success("Data Engineer", "Acme", "Build pipelines. " * 10)
    )


@pytest.fixture
def client(llm, store, fetcher):
    """FastAPI test client with scripted model, fresh store and fake fetcher."""
    from refiner_service.app import app
    from refiner_service.dependencies import (
        get_job_posting_fetcher,
        get_llm_client,
        get_session_store,
    )

    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_job_posting_fetcher] = lambda: fetcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
