"""
CV Refiner Service Configuration

Settings for the language model backend, session limits, job posting
fetches and request defaults, read from the environment (and .env).
"""

from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Local development keeps secrets in .env
load_dotenv()


class RefinerSettings(BaseSettings):
    """
    Environment-backed settings for the refiner API.

    Field names map to upper-case environment variables; bounds and
    enumerations are checked when the settings object is built.
    """

    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    # === Language model ===
    llm_provider: str = Field(
        default="ollama",
        description="Language model provider: ollama or openai"
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL"
    )
    ollama_model: str = Field(
        default="llama3.1:8b",
        description="Ollama model tag"
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="OpenAI-compatible endpoint URL (None for api.openai.com)"
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="API key for the OpenAI-compatible endpoint"
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="Chat model name for the OpenAI-compatible endpoint"
    )
    llm_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (0-2)"
    )
    llm_timeout_seconds: int = Field(
        default=300,
        ge=10,
        le=1800,
        description="Language model request timeout; long enough for cold model loads (10-1800)"
    )

    # === Job posting fetcher ===
    job_fetch_timeout_seconds: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Job posting timeout in seconds, applied to the static fetch and to the browser render (1-60)"
    )
    job_fetch_use_browser: bool = Field(
        default=True,
        description="Fall back to a headless browser for client-rendered job pages"
    )

    # === Sessions ===
    session_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        ge=60,
        description="Idle time after which a session expires"
    )
    max_sessions: int = Field(
        default=500,
        ge=1,
        le=100000,
        description="Maximum live sessions before least-recently-active eviction"
    )
    chat_history_window: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Transcript turns sent with chat prompts"
    )
    generation_history_window: int = Field(
        default=6,
        ge=0,
        le=100,
        description="Transcript turns sent with resume generation prompts"
    )

    # === Request defaults ===
    default_language: str = Field(
        default="en",
        description="Response language when a request does not specify one"
    )
    default_country_code: str = Field(
        default="DK",
        min_length=2,
        max_length=2,
        description="Phone region when a request does not specify one"
    )

    # === CORS ===
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    # === Logging ===
    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(
        default="simple",
        description="Log format: simple or json"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Deployment stage, lower-cased."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("llm_provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate the language model provider."""
        allowed = {"ollama", "openai"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"llm_provider must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("ollama_base_url")
    @classmethod
    def validate_url_format(cls, v: str) -> str:
        """Require an http(s) scheme and drop the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"ollama_base_url must start with http:// or https://, got {v!r}")
        return v.rstrip("/")

    @field_validator("default_country_code")
    @classmethod
    def upper_country_code(cls, v: str) -> str:
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in {"simple", "json"}:
            raise ValueError("log_format must be 'simple' or 'json'")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Allowed CORS origins, blanks removed."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """True when ENVIRONMENT=production."""
        return self.environment == "production"

    @property
    def llm_model_name(self) -> str:
        """Model name for the configured provider."""
        return self.openai_model if self.llm_provider == "openai" else self.ollama_model

    def validate_production_config(self) -> List[str]:
        """
        Collect configuration problems for the current environment.

        CRITICAL entries stop startup; WARNING entries are only logged.
        """
        issues = []

        if self.llm_provider == "openai" and not self.openai_api_key and not self.openai_base_url:
            issues.append("CRITICAL: OPENAI_API_KEY required for the openai provider")

        if self.is_production:
            if not self.cors_origins:
                issues.append("WARNING: no CORS origins configured for production")
            if "localhost" in self.cors_origins:
                issues.append("WARNING: CORS_ORIGINS allows localhost in production")

        return issues

    class Config:
        env_prefix = ""
        case_sensitive = False  # OLLAMA_MODEL = ollama_model


@lru_cache()
def get_settings() -> RefinerSettings:
    """Process-wide settings, built once from the environment."""
    return RefinerSettings()


def validate_config_on_startup() -> None:
    """
    Check settings before the app starts serving.

    Raises ValueError for invalid values or CRITICAL issues; WARNING issues
    are logged and startup continues.
    """
    import logging
    logger = logging.getLogger(__name__)

    try:
        current = get_settings()
    except Exception as e:
        raise ValueError(f"Invalid refiner configuration: {e}") from e

    for issue in current.validate_production_config():
        if issue.startswith("CRITICAL"):
            raise ValueError(issue)
        logger.warning(issue)

    # Secrets are never logged
    logger.info(
        "Refiner configured: environment=%s provider=%s model=%s timeout=%ss",
        current.environment,
        current.llm_provider,
        current.llm_model_name,
        current.llm_timeout_seconds,
    )
    if current.llm_provider == "ollama":
        logger.info("  ollama_base_url=%s", current.ollama_base_url)
    else:
        logger.info("  openai_api_key=%s", "*****" if current.openai_api_key else "not set")
    logger.info("  sessions: ttl=%ss max=%s", current.session_ttl_seconds, current.max_sessions)


settings = get_settings()
