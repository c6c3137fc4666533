"""
Plain-text extraction from uploaded CV documents.

Supports PDF (pypdf) and DOCX (python-docx, including table cells, where
many CV templates keep their layout). Extraction is CPU-bound, so async
callers use ``extract_text_async`` which runs it in a worker thread.
"""

import asyncio
import io
import logging
import os
from typing import List

from docx import Document
from pypdf import PdfReader

from refiner.common.error_handling import ExtractionError, InputValidationError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".docx")


def file_format_for(filename: str) -> str:
    """
    Return the normalized extension of an uploaded file name.

    Raises:
        InputValidationError: If the extension is not supported
    """
    extension = os.path.splitext(filename or "")[1].lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise InputValidationError("Only PDF and DOCX files are supported")
    return extension


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n".join(pages)


def _extract_docx(data: bytes) -> str:
    document = Document(io.BytesIO(data))
    lines: List[str] = [p.text for p in document.paragraphs if p.text.strip()]

    for table in document.tables:
        for row in table.rows:
            seen = set()
            for cell in row.cells:
                # Merged cells repeat across the row
                if id(cell._tc) in seen:
                    continue
                seen.add(id(cell._tc))
                text = cell.text.strip()
                if text:
                    lines.append(text)

    return "\n".join(lines)


def extract_text(data: bytes, file_format: str) -> str:
    """
    Extract plain text from a PDF or DOCX document.

    Args:
        data: Raw file bytes
        file_format: ".pdf" or ".docx" (a leading dot is optional)

    Returns:
        Extracted text, never blank

    Raises:
        InputValidationError: If the format is not supported
        ExtractionError: If the file is corrupt or contains no text
    """
    extension = file_format_for(f"upload.{file_format.lstrip('.')}")

    try:
        if extension == ".pdf":
            text = _extract_pdf(data)
        else:
            text = _extract_docx(data)
    except Exception as e:
        logger.error(f"Failed to extract text from {extension} file: {e}")
        raise ExtractionError() from e

    if not text.strip():
        logger.warning(f"No text found in {extension} file ({len(data)} bytes)")
        raise ExtractionError()

    logger.info(f"Extracted {len(text)} chars from {extension} file")
    return text


async def extract_text_async(data: bytes, file_format: str) -> str:
    """Run ``extract_text`` in a worker thread."""
    return await asyncio.to_thread(extract_text, data, file_format)
