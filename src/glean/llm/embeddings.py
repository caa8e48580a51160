"""Text embeddings through the OpenAI embeddings endpoint."""

from __future__ import annotations

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from glean.config import Settings
from glean.llm.retry import RetryPolicy

_TRANSIENT = (APIConnectionError, APITimeoutError, InternalServerError, RateLimitError)


class EmbeddingClient:
    """Turn a single string into a fixed-length float vector."""

    def __init__(self, settings: Settings, *, retry_policy: RetryPolicy | None = None) -> None:
        self._api_key = settings.openai_api_key
        self._client: AsyncOpenAI | None = None
        self._model = settings.embedding_model
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def model(self) -> str:
        return self._model

    def _openai(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError("OPENAI_API_KEY is not set; embeddings are unavailable.")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def embed(self, text: str) -> list[float]:
        client = self._openai()
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(_TRANSIENT),
            stop=stop_after_attempt(self._retry_policy.max_attempts),
            wait=self._retry_policy.wait(),
            reraise=True,
        ):
            with attempt:
                response = await client.embeddings.create(model=self._model, input=text)
        return list(response.data[0].embedding)
