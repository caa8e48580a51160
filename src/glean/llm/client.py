"""Async wrapper around the Anthropic Claude SDK."""

from __future__ import annotations

import logging
from typing import TypeVar

from anthropic import APIStatusError, AsyncAnthropic, AuthenticationError
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
)

from glean.config import Settings
from glean.llm.retry import RetryPolicy
from glean.llm.validation import FieldError, Invalid, SchemaValidator

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_INSTRUCTION = (
    "Respond with a single JSON object only. Do not wrap it in markdown "
    "code fences and do not add commentary before or after it."
)


class LLMAuthenticationError(RuntimeError):
    """The configured API key was rejected."""


class LLMResponseError(RuntimeError):
    """The model never returned JSON matching the required schema."""

    def __init__(self, errors: list[FieldError], attempts: int) -> None:
        self.errors = errors
        self.attempts = attempts
        details = "; ".join(str(e) for e in errors) or "no details"
        super().__init__(
            f"AI response format error after {attempts} attempt(s): {details}"
        )


class _ShapeMismatch(Exception):
    def __init__(self, invalid: Invalid) -> None:
        super().__init__(invalid.describe())
        self.invalid = invalid


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for transient API errors (rate-limits, server errors).

    Authentication errors (401) and bad-request errors (400) should NOT be
    retried; they will never succeed without a config change.
    """
    if isinstance(exc, (AuthenticationError, LLMAuthenticationError)):
        return False
    if isinstance(exc, APIStatusError) and exc.status_code < 500:
        return exc.status_code == 429
    return True


class ClaudeClient:
    """Thin wrapper providing retry logic, schema validation and token tracking."""

    def __init__(
        self,
        settings: Settings,
        *,
        api_key: str | None = None,
        model: str | None = None,
        retry_policy: RetryPolicy | None = None,
        validator: SchemaValidator | None = None,
    ) -> None:
        self._client = AsyncAnthropic(api_key=api_key or settings.anthropic_api_key)
        self._model = model or settings.model
        self._max_tokens = settings.max_tokens
        self._temperature = settings.temperature
        self._retry_policy = retry_policy or RetryPolicy()
        self._validator = validator or SchemaValidator()
        self._total_input_tokens = 0
        self._total_output_tokens = 0

    async def generate(
        self,
        system: str,
        messages: list[dict],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a message to Claude and return the text response."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._retry_policy.max_attempts),
            wait=self._retry_policy.wait(),
            reraise=True,
        ):
            with attempt:
                try:
                    response = await self._client.messages.create(
                        model=self._model,
                        max_tokens=max_tokens or self._max_tokens,
                        temperature=temperature if temperature is not None else self._temperature,
                        system=system,
                        messages=messages,
                    )
                except AuthenticationError as exc:
                    raise LLMAuthenticationError(
                        "Anthropic rejected the API key. Check ANTHROPIC_API_KEY."
                    ) from exc

        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens
        return response.content[0].text

    async def generate_structured(
        self,
        system: str,
        messages: list[dict],
        schema: type[ModelT],
        *,
        max_retries: int = 3,
        temperature: float | None = None,
    ) -> ModelT:
        """Ask for JSON and return it parsed into ``schema``.

        A reply that fails validation is requested again, up to
        ``max_retries`` attempts with the policy's backoff. The final failure
        raises ``LLMResponseError`` listing the offending fields.
        """
        system = f"{system}\n\n{JSON_INSTRUCTION}"
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(_ShapeMismatch),
                stop=stop_after_attempt(max(1, max_retries)),
                wait=self._retry_policy.wait(),
                reraise=True,
            ):
                with attempt:
                    attempts += 1
                    text = await self.generate(system, messages, temperature=temperature)
                    result = self._validator.validate(text, schema)
                    if not result.ok:
                        logger.warning(
                            "Validation failed on attempt %d/%d: %s",
                            attempts,
                            max_retries,
                            result.describe(),
                        )
                        raise _ShapeMismatch(result)
        except _ShapeMismatch as exc:
            raise LLMResponseError(exc.invalid.errors, attempts) from exc

        return result.value

    @property
    def usage_summary(self) -> dict:
        return {
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
        }
