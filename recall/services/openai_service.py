# recall/services/openai_service.py
"""
OpenAI Service
Language backend for intent extraction, signal extraction and answer synthesis.
Every caller treats the backend as unreliable and defines its own fallback;
only a missing configuration is surfaced as a hard failure.
"""

import asyncio

import openai
from openai import AsyncOpenAI

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class LanguageBackendError(Exception):
    """Raised when a completion call fails."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


class ConfigurationError(LanguageBackendError):
    """Raised when the language backend is not configured. Never retried."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class OpenAIService:
    """
    Thin async wrapper around chat completions with retry on transient errors.

    The client is created lazily so the service can be constructed (and the
    app can start) without an API key; the first call then raises
    ConfigurationError.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.OPENAI_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.OPENAI_MAX_RETRIES
        self.client: AsyncOpenAI | None = None

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        """Raise ConfigurationError with a remediation hint if no API key is set."""
        if not self.is_configured():
            raise ConfigurationError(
                "OpenAI not configured. Please set OPENAI_API_KEY environment variable."
            )

    def _get_client(self) -> AsyncOpenAI:
        self.ensure_configured()
        if self.client is None:
            self.client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
            logger.info("OpenAI client initialized", model=self.model, timeout=self.timeout)
        return self.client

    async def complete(
        self,
        system_prompt: str,
        user_text: str,
        temperature: float = 0.0,
        max_tokens: int = 500,
        json_object: bool = False,
    ) -> str:
        """
        Run one chat completion and return the stripped text.

        Args:
            system_prompt: Instructions for the model
            user_text: The user turn
            temperature: Sampling temperature
            max_tokens: Completion token cap
            json_object: Ask the API to constrain output to a JSON object

        Returns:
            str: Model output ("" never returned, empty output raises)

        Raises:
            ConfigurationError: If no API key is configured
            LanguageBackendError: If every attempt fails
        """
        client = self._get_client()

        request = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_object:
            request["response_format"] = {"type": "json_object"}

        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                response = await client.chat.completions.create(**request)

                if not response.choices or not response.choices[0].message.content:
                    raise LanguageBackendError("Empty response from OpenAI API")

                result = response.choices[0].message.content.strip()

                logger.debug(
                    "OpenAI API call successful",
                    attempt=attempt + 1,
                    response_length=len(result),
                    usage_tokens=response.usage.total_tokens if response.usage else 0,
                )
                return result

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 30)

                logger.warning(
                    "OpenAI rate limit hit, retrying",
                    attempt=attempt + 1,
                    wait_time=wait_time,
                    error=str(e),
                )

                if attempt < self.max_retries - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning(
                    "OpenAI API timeout, retrying",
                    attempt=attempt + 1,
                    timeout=self.timeout,
                    error=str(e),
                )

            except openai.APIStatusError as e:
                last_error = e
                # Don't retry on client errors (4xx)
                if 400 <= e.status_code < 500:
                    logger.error("OpenAI client error (not retrying)", error=str(e))
                    break

                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

            except openai.APIError as e:
                last_error = e
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

            except LanguageBackendError as e:
                last_error = e
                logger.warning("OpenAI returned empty content", attempt=attempt + 1)

        logger.error(
            "OpenAI API call failed after all retries",
            max_retries=self.max_retries,
            final_error=str(last_error),
        )

        raise LanguageBackendError(
            f"OpenAI API failed after {self.max_retries} attempts",
            api_error=str(last_error),
            recoverable=True,
        ) from last_error
