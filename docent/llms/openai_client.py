"""
OpenAI adapters for text generation and embeddings.

Built on ``openai.AsyncOpenAI``. Provider failures are retried inside the
adapter with exponential backoff and surfaced as ``GenerationError`` or
``EmbeddingError`` once retries are exhausted.
"""

import logging
from collections.abc import AsyncIterator, Sequence

import openai
from openai import AsyncOpenAI

from ..config import Settings
from ..resilience import EmbeddingError, GenerationError, async_retry
from .base import ChatTurn, Embedder, TextGenerator

logger = logging.getLogger(__name__)


def build_openai_messages(
    system_prompt: str, history: Sequence[ChatTurn], user_message: str
) -> list[dict[str, str]]:
    """System prompt first, then prior turns, then the new user message."""
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend({"role": turn.role, "content": turn.content} for turn in history)
    messages.append({"role": "user", "content": user_message})
    return messages


class OpenAITextGenerator(TextGenerator):
    """Adapter for OpenAI chat completions"""

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self.settings = settings
        self.model = settings.CHAT_MODEL
        # retries are owned by async_retry below
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0)
        self._retrying_create = async_retry(
            max_retries=settings.LLM_MAX_RETRIES,
            initial_delay=1.0,
            exceptions=(openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError),
        )(self.client.chat.completions.create)

    def _request_params(self, system_prompt, history, user_message, temperature, max_tokens) -> dict:
        return {
            "model": self.model,
            "messages": build_openai_messages(system_prompt, history, user_message),
            "temperature": self.settings.TEMPERATURE if temperature is None else temperature,
            "max_tokens": self.settings.MAX_TOKENS if max_tokens is None else max_tokens,
        }

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatTurn],
        user_message: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        params = self._request_params(system_prompt, history, user_message, temperature, max_tokens)
        logger.debug(f"OpenAI completion request: model={self.model}, history={len(history)}")
        try:
            response = await self._retrying_create(**params)
        except openai.OpenAIError as e:
            raise GenerationError(f"OpenAI completion failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def complete_stream(
        self,
        system_prompt: str,
        history: Sequence[ChatTurn],
        user_message: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        params = self._request_params(system_prompt, history, user_message, temperature, max_tokens)
        logger.debug(f"OpenAI stream request: model={self.model}, history={len(history)}")
        try:
            stream = await self._retrying_create(stream=True, **params)
            # closes the HTTP response when the consumer stops early
            async with stream:
                async for chunk in stream:
                    if chunk.choices and chunk.choices[0].delta and chunk.choices[0].delta.content:
                        yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            raise GenerationError(f"OpenAI stream failed: {e}") from e


class OpenAIEmbedder(Embedder):
    """Adapter for OpenAI embeddings; input is truncated to ``EMBEDDING_MAX_CHARS``."""

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self.model = settings.EMBEDDING_MODEL
        self.dimension = settings.EMBEDDING_DIMENSION
        self.max_chars = settings.EMBEDDING_MAX_CHARS
        # retries are owned by async_retry below
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0)
        self._retrying_create = async_retry(
            max_retries=settings.LLM_MAX_RETRIES,
            initial_delay=1.0,
            exceptions=(openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError),
        )(self.client.embeddings.create)

    async def embed(self, text: str) -> list[float]:
        try:
            response = await self._retrying_create(model=self.model, input=text[: self.max_chars])
        except openai.OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding failed: {e}") from e

        if not response.data:
            raise EmbeddingError("OpenAI embedding response contained no vectors")
        return [float(v) for v in response.data[0].embedding]
