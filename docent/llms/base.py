"""
Model collaborator contracts.

The core only ever talks to a text generator (prompt in, completion or a
stream of text increments out) and an embedder (text in, fixed-length
vector out). Provider adapters implement these.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class ChatTurn:
    """One prior message handed to the model as history."""

    role: str
    content: str


class TextGenerator(ABC):
    """Base class for text-generation providers"""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatTurn],
        user_message: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return the full completion text."""

    @abstractmethod
    def complete_stream(
        self,
        system_prompt: str,
        history: Sequence[ChatTurn],
        user_message: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield completion text increments as the provider produces them."""


class Embedder(ABC):
    """Base class for embedding providers"""

    dimension: int

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for ``text``."""
