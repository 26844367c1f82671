"""
Docent - Assistant Facade
=========================

The caller-facing operation surface. Wires repositories, model adapters,
knowledge search, the personality service and the turn orchestrator
together, and exposes every operation as a coroutine taking and returning
plain structured values.

Usage:
    from docent import Assistant

    assistant = Assistant()
    await assistant.init(create_schema=True)

    reply = await assistant.send_message(SendMessageInput(user_id="u1", message="Hello"))
    async for event in assistant.stream_message(SendMessageInput(conversation_id=reply.conversation_id, message="More")):
        print(event.type)
"""

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .chat import TurnOrchestrator, TurnStream
from .config import Settings, get_settings
from .core.db import build_engine, build_session_factory, init_db
from .core.repositories import (
    DEFAULT_CONVERSATION_TITLE,
    ConversationRepository,
    FeedbackRepository,
    KnowledgeRepository,
    MessageRepository,
    PersonalityRepository,
)
from .core.schemas import (
    BuildPersonalityInput,
    ConversationDetail,
    ConversationRecord,
    FeedbackCreate,
    FeedbackRating,
    FeedbackRecord,
    KnowledgeItemCreate,
    KnowledgeItemRecord,
    KnowledgeItemUpdate,
    MessageRecord,
    MessageStatus,
    Personality,
    PersonalityProfile,
    SearchResult,
    SendMessageInput,
    SendMessageOutput,
)
from .ingestion import DirectoryIngestor, IngestConfig, IngestResult
from .knowledge import KnowledgeService
from .llms import Embedder, TextGenerator, create_embedder, create_text_generator
from .personality import PersonalityCache, PersonalityService
from .resilience import DocentError, NotFoundError
from .retrieval import KnowledgeSearch, SearchMode

logger = logging.getLogger(__name__)


class Assistant:
    """Knowledge-grounded chat assistant."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        engine: Engine | None = None,
        session_factory: sessionmaker | None = None,
        generator: TextGenerator | None = None,
        embedder: Embedder | None = None,
        personality_cache: PersonalityCache | None = None,
    ):
        self.settings = settings or get_settings()
        if engine is None and session_factory is not None:
            engine = session_factory.kw.get("bind")
        self.engine = engine or build_engine(settings=self.settings)
        self.session_factory = session_factory or build_session_factory(self.engine)

        self.generator = generator or create_text_generator(self.settings)
        self.embedder = embedder or create_embedder(self.settings)

        self.conversation_repo = ConversationRepository(self.session_factory)
        self.message_repo = MessageRepository(self.session_factory)
        self.knowledge_repo = KnowledgeRepository(self.session_factory)
        self.personality_repo = PersonalityRepository(self.session_factory)
        self.feedback_repo = FeedbackRepository(self.session_factory)

        self.search = KnowledgeSearch(self.knowledge_repo, self.embedder)
        self.knowledge = KnowledgeService(self.knowledge_repo, self.embedder)
        self.personality = PersonalityService(
            self.personality_repo, self.search, self.generator, self.settings, cache=personality_cache
        )
        self.turns = TurnOrchestrator(
            self.conversation_repo,
            self.message_repo,
            self.search,
            self.personality,
            self.generator,
            self.settings,
        )
        self._initialized = False

    async def init(self, create_schema: bool = False) -> None:
        """Ensure a personality exists before the first turn."""
        if self._initialized:
            return

        if create_schema:
            init_db(self.engine)

        try:
            await self.personality.get_personality()
        except DocentError as e:
            logger.error(f"Failed to load personality, rebuilding: {e}")
            await self.personality.build_personality()

        self._initialized = True

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================

    async def create_conversation(self, user_id: str, title: str | None = None) -> str:
        conversation = await self.conversation_repo.create(user_id, title or DEFAULT_CONVERSATION_TITLE)
        return conversation.id

    async def get_conversation(self, conversation_id: str) -> ConversationDetail:
        conversation = await self.conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        messages = await self.message_repo.list_by_conversation(conversation_id)
        return ConversationDetail(meta=conversation, messages=messages)

    async def list_conversations(self, user_id: str) -> list[ConversationRecord]:
        return await self.conversation_repo.list_by_user(user_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Soft delete; returns False when there was nothing live to delete."""
        return await self.conversation_repo.soft_delete(conversation_id)

    async def update_conversation_title(self, conversation_id: str, title: str) -> ConversationRecord:
        conversation = await self.conversation_repo.update_title(conversation_id, title)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        return conversation

    # =========================================================================
    # CHAT
    # =========================================================================

    async def send_message(self, data: SendMessageInput) -> SendMessageOutput:
        return await self.turns.send_message(data)

    def stream_message(self, data: SendMessageInput) -> TurnStream:
        return self.turns.stream_message(data)

    async def get_message(self, message_id: str) -> MessageRecord:
        message = await self.message_repo.get(message_id)
        if message is None:
            raise NotFoundError(f"Message not found: {message_id}")
        return message

    async def update_message_status(self, message_id: str, status: MessageStatus) -> MessageRecord:
        message = await self.message_repo.update_status(message_id, status)
        if message is None:
            raise NotFoundError(f"Message not found: {message_id}")
        return message

    # =========================================================================
    # KNOWLEDGE BASE
    # =========================================================================

    async def search_knowledge(
        self,
        query: str,
        limit: int = 5,
        threshold: float = 0.7,
        mode: SearchMode = SearchMode.HYBRID,
    ) -> list[SearchResult]:
        return await self.search.search(query, limit=limit, threshold=threshold, mode=mode)

    async def create_knowledge_item(self, item: KnowledgeItemCreate) -> str:
        return await self.knowledge.create_item(item)

    async def get_knowledge_item(self, item_id: str) -> KnowledgeItemRecord:
        return await self.knowledge.get_item(item_id)

    async def update_knowledge_item(self, item_id: str, updates: KnowledgeItemUpdate) -> KnowledgeItemRecord:
        return await self.knowledge.update_item(item_id, updates)

    async def delete_knowledge_item(self, item_id: str) -> None:
        await self.knowledge.delete_item(item_id)

    async def ingest_directory(self, path: str, config: IngestConfig | None = None) -> IngestResult:
        ingestor = DirectoryIngestor(self.knowledge_repo, self.embedder, config)
        return await ingestor.ingest(path)

    # =========================================================================
    # PERSONALITY
    # =========================================================================

    async def build_personality(self, options: BuildPersonalityInput | None = None) -> Personality:
        return await self.personality.build_personality(options)

    async def get_personality(self) -> Personality:
        return await self.personality.get_personality()

    async def set_personality(self, system_prompt: str, profile: PersonalityProfile | None = None) -> Personality:
        return await self.personality.set_personality(system_prompt, profile)

    # =========================================================================
    # FEEDBACK
    # =========================================================================

    async def submit_feedback(
        self,
        message_id: str,
        user_id: str,
        rating: FeedbackRating | str,
        category: str | None = None,
        comment: str | None = None,
        suggested_improvement: str | None = None,
    ) -> FeedbackRecord:
        return await self.feedback_repo.create(
            FeedbackCreate(
                message_id=message_id,
                user_id=user_id,
                rating=rating,
                category=category,
                comment=comment,
                suggested_improvement=suggested_improvement,
            )
        )

    async def get_message_feedback(self, message_id: str) -> list[FeedbackRecord]:
        return await self.feedback_repo.list_by_message(message_id)

    async def get_user_feedback(self, user_id: str, limit: int = 50) -> list[FeedbackRecord]:
        return await self.feedback_repo.list_by_user(user_id, limit)

