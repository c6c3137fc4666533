"""
Service layer for the CV refiner.

- session_store: in-memory session table with TTL and capacity eviction
- refinement_service: session lifecycle, chat and artifact generation
- resume_service: sessionless one-shot résumé enhancement
- response_parser: defensive decoding of model replies into typed records
- text_extractor: PDF/DOCX to plain text
- job_posting_fetcher: best-effort job posting scraper
"""
