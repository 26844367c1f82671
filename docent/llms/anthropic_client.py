"""
Anthropic adapter for text generation.

Anthropic takes the system prompt as a separate parameter and only accepts
user/assistant turns, so any system-role history is dropped.
"""

import logging
from collections.abc import AsyncIterator, Sequence

import anthropic
from anthropic import AsyncAnthropic

from ..config import Settings
from ..resilience import GenerationError, async_retry
from .base import ChatTurn, TextGenerator

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-latest"


def build_anthropic_messages(history: Sequence[ChatTurn], user_message: str) -> list[dict[str, str]]:
    messages = [
        {"role": turn.role, "content": turn.content}
        for turn in history
        if turn.role in ("user", "assistant")
    ]
    messages.append({"role": "user", "content": user_message})
    return messages


class AnthropicTextGenerator(TextGenerator):
    """Adapter for Anthropic Claude messages"""

    def __init__(self, settings: Settings, client: AsyncAnthropic | None = None):
        self.settings = settings
        self.model = settings.CHAT_MODEL if settings.CHAT_MODEL.startswith("claude") else DEFAULT_ANTHROPIC_MODEL
        # retries are owned by async_retry below
        self.client = client or AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY, max_retries=0)
        self._retrying_create = async_retry(
            max_retries=settings.LLM_MAX_RETRIES,
            initial_delay=1.0,
            exceptions=(anthropic.APIConnectionError, anthropic.RateLimitError, anthropic.InternalServerError),
        )(self.client.messages.create)

    def _request_params(self, system_prompt, history, user_message, temperature, max_tokens) -> dict:
        return {
            "model": self.model,
            "system": system_prompt,
            "messages": build_anthropic_messages(history, user_message),
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
        logger.debug(f"Anthropic completion request: model={self.model}, history={len(history)}")
        try:
            response = await self._retrying_create(**params)
        except anthropic.AnthropicError as e:
            raise GenerationError(f"Anthropic completion failed: {e}") from e

        return "".join(block.text for block in response.content if getattr(block, "type", None) == "text")

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
        logger.debug(f"Anthropic stream request: model={self.model}, history={len(history)}")
        try:
            async with self.client.messages.stream(**params) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except anthropic.AnthropicError as e:
            raise GenerationError(f"Anthropic stream failed: {e}") from e
