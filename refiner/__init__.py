"""
CV Refiner core package.

Session-scoped résumé refinement on top of a language model: ingest a CV,
refine it through chat, and generate an enhanced résumé and cover letter.
"""
