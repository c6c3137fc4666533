"""
Language-model transport.

Sends a (system prompt, user prompt) pair to a text-completion endpoint and
returns the raw reply text. Two providers are supported:

- ollama: a local Ollama server via its /api/generate endpoint
- openai: any OpenAI-compatible chat endpoint via LangChain's ChatOpenAI

Transport failures (timeout, refused connection, non-2xx status) surface as
UpstreamUnavailableError. Cancelling the awaiting task aborts the in-flight
HTTP request.

Usage:
    client = create_llm_client(settings)
    text = await client.generate(system_prompt, user_prompt)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
import openai
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from refiner.common.error_handling import UpstreamUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_TEMPERATURE = 0.7


class LanguageModelClient(ABC):
    """Interface every model provider implements."""

    model: str

    @abstractmethod
    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one prompt pair and return the model's reply text.

        Raises:
            UpstreamUnavailableError: If the endpoint cannot be reached or fails
        """

    async def aclose(self) -> None:
        """Release pooled connections."""


class OllamaClient(LanguageModelClient):
    """Client for Ollama's non-streaming /api/generate endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = DEFAULT_TEMPERATURE,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Ollama server URL
            model: Model tag to run
            temperature: Sampling temperature
            timeout_seconds: Request timeout; generous to survive cold model loads
            http_client: Optional pre-built client (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
        )

    def _build_payload(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": user_prompt,
            "system": system_prompt,
            "stream": False,
            "options": {"temperature": self.temperature},
        }

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        logger.info(f"Sending request to Ollama model {self.model}")

        try:
            response = await self._client.post(
                "/api/generate",
                json=self._build_payload(system_prompt, user_prompt),
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(
                f"Ollama request timed out (model={self.model})", cause=e
            ) from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailableError(
                f"Ollama returned HTTP {e.response.status_code} (model={self.model})", cause=e
            ) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailableError(
                f"Failed to connect to Ollama at {self.base_url}. Is it running? Try: ollama serve",
                cause=e,
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Ollama returned a non-JSON body", cause=e) from e

        content = (body or {}).get("response") or ""
        logger.info(f"Received response from Ollama ({len(content)} chars)")
        return content

    async def aclose(self) -> None:
        await self._client.aclose()


class ChatModelClient(LanguageModelClient):
    """Client for OpenAI-compatible chat endpoints through LangChain."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        llm: Optional[Any] = None,
    ):
        """
        Args:
            model: Chat model name
            api_key: API key for the endpoint
            base_url: Endpoint URL (None for api.openai.com)
            temperature: Sampling temperature
            timeout_seconds: Request timeout
            llm: Optional pre-built chat model (tests inject a fake)
        """
        self.model = model
        self._llm = llm or ChatOpenAI(
            model=model,
            temperature=temperature,
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        logger.info(f"Sending request to chat model {self.model}")

        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]
        try:
            response = await self._llm.ainvoke(messages)
        except openai.APITimeoutError as e:
            raise UpstreamUnavailableError(
                f"Chat model request timed out (model={self.model})", cause=e
            ) from e
        except openai.APIStatusError as e:
            raise UpstreamUnavailableError(
                f"Chat model returned HTTP {e.status_code} (model={self.model})", cause=e
            ) from e
        except openai.APIConnectionError as e:
            raise UpstreamUnavailableError(
                f"Failed to connect to chat model endpoint (model={self.model})", cause=e
            ) from e

        content = response.content if isinstance(response.content, str) else str(response.content)
        logger.info(f"Received response from chat model ({len(content)} chars)")
        return content


def create_llm_client(settings: Any) -> LanguageModelClient:
    """
    Build the configured language-model client.

    Args:
        settings: RefinerSettings (or any object exposing the same fields)

    Returns:
        LanguageModelClient for ``settings.llm_provider``
    """
    provider = settings.llm_provider
    if provider == "openai":
        logger.info(f"Using OpenAI-compatible chat model {settings.openai_model}")
        return ChatModelClient(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            temperature=settings.llm_temperature,
            timeout_seconds=settings.llm_timeout_seconds,
        )

    logger.info(f"Using Ollama model {settings.ollama_model} at {settings.ollama_base_url}")
    return OllamaClient(
        base_url=settings.ollama_base_url,
        model=settings.ollama_model,
        temperature=settings.llm_temperature,
        timeout_seconds=settings.llm_timeout_seconds,
    )
