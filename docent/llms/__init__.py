"""
Model collaborators: text generation and embeddings.

Usage:
    from docent.llms import create_text_generator, create_embedder

    generator = create_text_generator(settings)
    reply = await generator.complete(system_prompt, history, "hello")
"""

from ..config import Settings, get_settings
from .anthropic_client import AnthropicTextGenerator
from .base import ChatTurn, Embedder, TextGenerator
from .openai_client import OpenAIEmbedder, OpenAITextGenerator

SUPPORTED_PROVIDERS = ("openai", "anthropic")


def create_text_generator(settings: Settings | None = None) -> TextGenerator:
    """Build the text generator selected by ``LLM_PROVIDER``."""
    settings = settings or get_settings()
    provider = settings.LLM_PROVIDER.lower()

    if provider == "openai":
        return OpenAITextGenerator(settings)
    if provider == "anthropic":
        return AnthropicTextGenerator(settings)
    raise ValueError(f"Unsupported LLM provider: {settings.LLM_PROVIDER} (expected one of {SUPPORTED_PROVIDERS})")


def create_embedder(settings: Settings | None = None) -> Embedder:
    """Embeddings are always served by OpenAI."""
    return OpenAIEmbedder(settings or get_settings())


__all__ = [
    "ChatTurn",
    "Embedder",
    "TextGenerator",
    "AnthropicTextGenerator",
    "OpenAIEmbedder",
    "OpenAITextGenerator",
    "create_text_generator",
    "create_embedder",
]
