"""
Conversation Turn Orchestrator
==============================

One turn = one persisted user message + one persisted assistant reply.

Protocol shared by the buffered and streamed variants:
1. resolve the conversation (validate, or auto-create for a bare user id)
2. persist the user message
3. load the last 10 messages as history, minus the message just stored
4. hybrid knowledge search on the raw message (limit 3, threshold 0.7)
5. fetch the personality (builds it when absent or stale)
6. call the text generator with personality + knowledge context
7. persist the assistant reply, parented to the user message, and add 2 to
   the conversation's message count in the same transaction

Usage:
    output = await orchestrator.send_message(SendMessageInput(user_id="u1", message="hi"))

    async for event in orchestrator.stream_message(SendMessageInput(conversation_id=cid, message="hi")):
        ...
"""

import logging
from dataclasses import dataclass, field

from ..config import Settings
from ..core.repositories import DEFAULT_CONVERSATION_TITLE, ConversationRepository, MessageRepository
from ..core.schemas import (
    MessageMetadata,
    MessageRecord,
    MessageRole,
    MessageStatus,
    SearchResult,
    SendMessageInput,
    SendMessageOutput,
)
from ..knowledge.service import format_context
from ..llms.base import ChatTurn, TextGenerator
from ..observability import OperationLogger, preview
from ..personality import PersonalityService
from ..resilience import InvalidInputError, NotFoundError
from ..retrieval import KnowledgeSearch, SearchMode
from .streaming import TurnStream

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10
CONTEXT_SEARCH_LIMIT = 3
CONTEXT_SEARCH_THRESHOLD = 0.7
EMPTY_REPLY = "I apologize, but I was unable to generate a response."


@dataclass
class PreparedTurn:
    """Everything gathered before the model is invoked."""

    conversation_id: str
    user_message: MessageRecord
    user_text: str
    system_prompt: str
    history: list[ChatTurn] = field(default_factory=list)
    knowledge: list[SearchResult] = field(default_factory=list)
    user_context: dict | None = None


def compose_system_prompt(personality_prompt: str, knowledge_context: str) -> str:
    if not knowledge_context:
        return personality_prompt
    return f"{personality_prompt}\n\n{knowledge_context}"


class TurnOrchestrator:
    def __init__(
        self,
        conversations: ConversationRepository,
        messages: MessageRepository,
        search: KnowledgeSearch,
        personality: PersonalityService,
        generator: TextGenerator,
        settings: Settings,
    ):
        self.conversations = conversations
        self.messages = messages
        self.search = search
        self.personality = personality
        self.generator = generator
        self.settings = settings

    # ------------------------------------------------------------------
    # Shared protocol
    # ------------------------------------------------------------------

    @staticmethod
    def validate(data: SendMessageInput) -> None:
        if bool(data.conversation_id) == bool(data.user_id):
            raise InvalidInputError("Exactly one of conversation_id or user_id must be provided")
        if not data.message or not data.message.strip():
            raise InvalidInputError("message must not be empty")

    async def resolve_conversation(self, data: SendMessageInput) -> str:
        """Return the conversation id for this turn, creating one for a bare user id."""
        self.validate(data)

        if data.conversation_id:
            conversation = await self.conversations.get(data.conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation not found: {data.conversation_id}")
            return conversation.id

        conversation = await self.conversations.create(data.user_id, DEFAULT_CONVERSATION_TITLE)
        logger.info(f"Created conversation {conversation.id} for user {data.user_id}")
        return conversation.id

    async def prepare_turn(self, conversation_id: str, data: SendMessageInput) -> PreparedTurn:
        user_message = await self.messages.create(
            conversation_id,
            MessageRole.USER,
            data.message,
            status=MessageStatus.COMPLETED,
            metadata=MessageMetadata(context=data.context),
        )

        recent = await self.messages.recent(conversation_id, HISTORY_LIMIT)
        history = [
            ChatTurn(role=message.role.value, content=message.content)
            for message in recent
            if message.id != user_message.id
        ]

        knowledge = await self.search.search(
            data.message,
            limit=CONTEXT_SEARCH_LIMIT,
            threshold=CONTEXT_SEARCH_THRESHOLD,
            mode=SearchMode.HYBRID,
        )
        personality = await self.personality.get_personality()

        logger.debug(f"Turn prepared: history={len(history)}, knowledge={len(knowledge)}")
        return PreparedTurn(
            conversation_id=conversation_id,
            user_message=user_message,
            user_text=data.message,
            system_prompt=compose_system_prompt(personality.system_prompt, format_context(knowledge)),
            history=history,
            knowledge=knowledge,
            user_context=data.context,
        )

    async def finish_turn(self, turn: PreparedTurn, content: str, streamed: bool = False) -> MessageRecord:
        metadata = MessageMetadata(
            knowledge_used=bool(turn.knowledge),
            knowledge_item_count=len(turn.knowledge),
            streamed=True if streamed else None,
            user_context=turn.user_context,
        )
        # reply and count land together or not at all
        return await self.messages.create_reply(
            turn.conversation_id,
            content,
            parent_message_id=turn.user_message.id,
            metadata=metadata,
            count_increment=2,
        )

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    async def send_message(self, data: SendMessageInput) -> SendMessageOutput:
        """Run a full turn and return the assistant reply once it is stored."""
        conversation_id = await self.resolve_conversation(data)

        with OperationLogger(logger, "send_message", conversation_id=conversation_id):
            logger.info(f"User message: {preview(data.message)}")
            turn = await self.prepare_turn(conversation_id, data)
            content = await self.generator.complete(
                turn.system_prompt,
                turn.history,
                turn.user_text,
                temperature=self.settings.TEMPERATURE,
                max_tokens=self.settings.MAX_TOKENS,
            )
            reply = await self.finish_turn(turn, content or EMPTY_REPLY)

        return SendMessageOutput(content=reply.content, conversation_id=conversation_id, message_id=reply.id)

    def stream_message(self, data: SendMessageInput) -> TurnStream:
        """Return a ``TurnStream`` of start/delta/final|error events."""
        return TurnStream(self, data)
