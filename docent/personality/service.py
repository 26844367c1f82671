"""
Personality Service
===================

Owns the assistant's system prompt: loads it through a single-slot cache,
builds it from override instructions or from a summary of the knowledge
corpus, and persists it as a singleton record.

Build paths, in order of precedence:
1. override instructions (from the build input or ``PERSONALITY_INSTRUCTIONS``)
   are used verbatim as the prompt
2. an empty corpus yields the generic helper prompt
3. otherwise the ten most recent items are summarized by the text generator
   and the summary is embedded in the knowledge-grounded prompt

A summarization failure propagates to the caller of ``build_personality``.
"""

import logging
from collections.abc import Sequence

from ..config import Settings
from ..core.repositories import PersonalityRepository
from ..core.schemas import (
    BuildPersonalityInput,
    Personality,
    PersonalityMetadata,
    PersonalityProfile,
    SearchResult,
)
from ..llms.base import TextGenerator
from ..observability import OperationLogger
from ..retrieval import KnowledgeSearch
from .cache import PersonalityCache

logger = logging.getLogger(__name__)

DEFAULT_NAME = "AI Assistant"
SAMPLE_SIZE = 10
SUMMARY_CONTENT_CHARS = 500

CUSTOM_TONE = "helpful"
CUSTOM_DESCRIPTION = "Custom configured assistant"
GENERIC_TONE = "helpful and professional"
GENERIC_DESCRIPTION = "General purpose AI assistant."
KNOWLEDGE_TONE = "helpful and knowledgeable"
EMPTY_SUMMARY = "General purpose assistant."
DEFAULT_DOMAIN = "general"

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes knowledge base content "
    "to create an AI personality profile."
)
SUMMARY_REQUEST = (
    "Based on this knowledge base content, create a brief summary (2-3 sentences) "
    "describing what this assistant should know about and what tone/personality it should have:\n\n"
)
SUMMARY_TEMPERATURE = 0.7
SUMMARY_MAX_TOKENS = 200

GENERIC_PROMPT_TEMPLATE = """You are {name}, a helpful AI assistant.

Your role is to:
- Answer user questions clearly and accurately
- Provide helpful guidance and support
- Be professional, friendly, and respectful
- Admit when you don't know something
- Ask clarifying questions when needed

Always strive to be helpful while maintaining a professional demeanor."""

KNOWLEDGE_PROMPT_TEMPLATE = """You are {name}, an AI assistant with expertise based on the following knowledge:

{summary}

Your role is to:
- Answer questions using the knowledge base when relevant
- Provide accurate information based on the available knowledge
- Be helpful, clear, and professional in your responses
- Admit when information is outside your knowledge base
- Guide users to relevant resources when available

When answering questions:
1. Search your knowledge base for relevant information
2. Provide accurate, well-structured answers
3. Cite specific knowledge when applicable
4. Be honest about limitations in your knowledge"""


def build_generic_prompt(name: str) -> str:
    return GENERIC_PROMPT_TEMPLATE.format(name=name)


def build_knowledge_prompt(name: str, summary: str) -> str:
    return KNOWLEDGE_PROMPT_TEMPLATE.format(name=name, summary=summary)


def extract_domain(items: Sequence[SearchResult]) -> str:
    """First title word longer than four characters, lowercased; else "general"."""
    for item in items:
        for word in item.title.lower().split():
            if len(word) > 4:
                return word
    return DEFAULT_DOMAIN


def summary_input(items: Sequence[SearchResult]) -> str:
    return "\n\n".join(
        f"Title: {item.title}\n{(item.content or item.description or '')[:SUMMARY_CONTENT_CHARS]}"
        for item in items
    )


class PersonalityService:
    """Cached access to, and construction of, the personality singleton."""

    def __init__(
        self,
        repository: PersonalityRepository,
        search: KnowledgeSearch,
        generator: TextGenerator,
        settings: Settings,
        cache: PersonalityCache | None = None,
    ):
        self.repository = repository
        self.search = search
        self.generator = generator
        self.settings = settings
        self.cache = cache or PersonalityCache(ttl_seconds=settings.PERSONALITY_CACHE_TTL_SECONDS)

    @property
    def name(self) -> str:
        return self.settings.PERSONALITY_NAME or DEFAULT_NAME

    async def get_personality(self) -> Personality:
        cached = self.cache.get()
        if cached is not None:
            return cached

        record = await self.repository.get_current()
        if record is not None:
            personality = Personality.from_record(record)
            self.cache.set(personality)
            return personality

        logger.info("No stored personality, building one")
        return await self.build_personality()

    async def build_personality(self, options: BuildPersonalityInput | None = None) -> Personality:
        options = options or BuildPersonalityInput()
        if not options.refresh:
            return await self.get_personality()

        with OperationLogger(logger, "build_personality"):
            system_prompt, profile = await self._compose(options)
            return await self._store(system_prompt, profile)

    async def set_personality(self, system_prompt: str, profile: PersonalityProfile | None = None) -> Personality:
        """Persist an explicit prompt without sampling the corpus."""
        profile = profile or PersonalityProfile(name=self.name)
        if not profile.name:
            profile = profile.model_copy(update={"name": self.name})
        personality = await self._store(system_prompt, profile)
        logger.info(f"Personality set explicitly for {profile.name}")
        return personality

    async def _compose(self, options: BuildPersonalityInput) -> tuple[str, PersonalityProfile]:
        name = self.name
        tone_override = self.settings.PERSONALITY_TONE

        instructions = options.custom_instructions or self.settings.PERSONALITY_INSTRUCTIONS
        if instructions:
            logger.info("Building personality from override instructions")
            return instructions, PersonalityProfile(
                name=name, tone=tone_override or CUSTOM_TONE, description=CUSTOM_DESCRIPTION
            )

        items = await self.search.top_recent(SAMPLE_SIZE)
        if not items:
            logger.info("Knowledge corpus is empty, using generic personality")
            return build_generic_prompt(name), PersonalityProfile(
                name=name, tone=tone_override or GENERIC_TONE, description=GENERIC_DESCRIPTION
            )

        logger.info(f"Summarizing {len(items)} knowledge items into a personality")
        summary = await self.generator.complete(
            SUMMARY_SYSTEM_PROMPT,
            [],
            SUMMARY_REQUEST + summary_input(items),
            temperature=SUMMARY_TEMPERATURE,
            max_tokens=SUMMARY_MAX_TOKENS,
        )
        summary = summary.strip() or EMPTY_SUMMARY
        return build_knowledge_prompt(name, summary), PersonalityProfile(
            name=name,
            tone=tone_override or KNOWLEDGE_TONE,
            description=summary,
            domain=extract_domain(items),
        )

    async def _store(self, system_prompt: str, profile: PersonalityProfile) -> Personality:
        record = await self.repository.replace(
            name=profile.name,
            system_prompt=system_prompt,
            description=profile.description,
            metadata=PersonalityMetadata(tone=profile.tone, domain=profile.domain),
        )
        personality = Personality(system_prompt=system_prompt, profile=profile, last_built_at=record.last_built_at)
        self.cache.invalidate()
        self.cache.set(personality)
        return personality
