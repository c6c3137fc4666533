"""Shared utilities: types, logging, errors, JSON parsing, LLM transport."""
