"""
Error taxonomy and logging helpers for the CV refiner.

Exceptions are grouped by how the HTTP layer reports them:

- InputValidationError: malformed or missing request fields (client error)
- ExtractionError: a document could not be turned into text (client error)
- SessionNotFoundError: unknown or evicted session id (client error)
- UpstreamUnavailableError: the language model could not be reached (server error)

Unparseable model output is deliberately absent: every parse site degrades
to a fallback value instead of raising.
"""

import logging
from typing import Optional


class RefinerError(Exception):
    """Base exception for all CV refiner errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(RefinerError):
    """Raised when request input is missing or malformed, before any I/O."""
    pass


class ExtractionError(RefinerError):
    """Raised when a binary document cannot be converted to text."""

    def __init__(
        self,
        message: str = "Could not extract text from the file. The file might be image-based or corrupted.",
    ):
        super().__init__(message)


class SessionNotFoundError(RefinerError):
    """Raised when an operation references a session that does not exist."""

    def __init__(self, session_id: str):
        super().__init__("Session not found. Please upload a CV first.")
        self.session_id = session_id


class UpstreamUnavailableError(RefinerError):
    """
    Raised when the language model endpoint fails at the transport level.

    Covers timeouts, refused connections and non-2xx responses. Never raised
    for a reply that arrived but could not be parsed.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


def log_on_exception(
    logger: logging.Logger,
    operation: str,
    level: int = logging.WARNING,
    include_traceback: bool = False,
):
    """
    Context manager for logging exceptions without swallowing them.

    Cancellation is not an error and is never logged.

    Usage:
        with log_on_exception(logger, "cv analysis", level=logging.ERROR, include_traceback=True):
            raw = await llm.generate(system_prompt, user_prompt)

    Args:
        logger: Logger (or SessionLogger) instance to use
        operation: Operation description for the log message
        level: Log level (default: WARNING)
        include_traceback: Whether to include stack trace in log
    """

    class ExceptionLogger:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None and isinstance(exc_val, Exception):
                logger.log(
                    level,
                    f"[{operation}] Failed: {exc_val}",
                    exc_info=include_traceback,
                )
            # Return False to not suppress the exception
            return False

    return ExceptionLogger()
