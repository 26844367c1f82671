"""
Docent - Repositories
=====================

Async persistence operations over conversations, messages, feedback,
knowledge items and the personality singleton.

Every public method is a coroutine; the blocking SQLAlchemy session work runs
in the default executor so the event loop is never blocked. Rows are turned
into pydantic records before their session closes, and callers only ever see
the external ``uuid`` identifiers.

Usage:
    factory = build_session_factory(build_engine(url))
    conversations = ConversationRepository(factory)
    record = await conversations.create("user-1")
"""

import asyncio
import functools
import logging
import re
from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..resilience import NotFoundError, PersistenceError, handle_errors
from .db import session_scope
from .models import (
    Conversation,
    KnowledgeItem,
    Message,
    MessageFeedback,
    Personality,
    utcnow,
)
from .schemas import (
    ConversationRecord,
    FeedbackCreate,
    FeedbackRecord,
    KnowledgeItemCreate,
    KnowledgeItemRecord,
    MessageMetadata,
    MessageRecord,
    MessageRole,
    MessageStatus,
    PersonalityMetadata,
    PersonalityRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONVERSATION_TITLE = "New Conversation"
_TERM_PATTERN = re.compile(r"\w+", re.UNICODE)


# =============================================================================
# ROW CONVERSION
# =============================================================================


def _conversation_record(row: Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.uuid,
        creator_id=row.creator_id,
        title=row.title,
        message_count=row.message_count or 0,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )


def _message_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.uuid,
        conversation_id=row.conversation.uuid,
        parent_message_id=row.parent.uuid if row.parent is not None else None,
        role=row.role,
        content=row.content,
        status=row.status,
        metadata=MessageMetadata.model_validate(row.metadata_ or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _feedback_record(row: MessageFeedback) -> FeedbackRecord:
    return FeedbackRecord(
        id=row.uuid,
        message_id=row.message.uuid,
        user_id=row.user_id,
        rating=row.rating,
        category=row.category,
        comment=row.comment,
        suggested_improvement=row.suggested_improvement,
        created_at=row.created_at,
    )


def _knowledge_record(row: KnowledgeItem) -> KnowledgeItemRecord:
    return KnowledgeItemRecord(
        id=row.uuid,
        parent_id=row.parent.uuid if row.parent is not None else None,
        title=row.title,
        description=row.description,
        type=row.type,
        content=row.content,
        file_url=row.file_url,
        file_size=row.file_size,
        file_type=row.file_type,
        metadata=row.metadata_ or {},
        embedding=row.embedding,
        processed_at=row.processed_at,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _personality_record(row: Personality) -> PersonalityRecord:
    return PersonalityRecord(
        id=row.uuid,
        name=row.name,
        description=row.description,
        system_prompt=row.system_prompt,
        metadata=row.metadata_ or {},
        last_built_at=row.last_built_at,
    )


def _storage_metadata(metadata: Any) -> dict[str, Any]:
    if metadata is None:
        return {}
    if hasattr(metadata, "to_storage"):
        return metadata.to_storage()
    return dict(metadata)


# =============================================================================
# BASE
# =============================================================================


class BaseRepository:
    """Runs session-bound callables off the event loop."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _in_session(self, work: Callable[[Session], T]) -> T:
        with session_scope(self._session_factory) as session:
            return work(session)

    @handle_errors(PersistenceError, logger=logger, catch=(SQLAlchemyError,))
    async def _run(self, work: Callable[[Session], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self._in_session, work))


def _increment_count(session: Session, conversation_id: str, by: int) -> bool:
    result = session.execute(
        update(Conversation)
        .where(Conversation.uuid == conversation_id)
        .values(message_count=Conversation.message_count + by, updated_at=utcnow())
    )
    return result.rowcount > 0


def _insert_message(
    session: Session,
    conversation_id: str,
    role: MessageRole,
    content: str,
    status: MessageStatus,
    metadata: MessageMetadata | dict[str, Any] | None,
    parent_message_id: str | None,
) -> Message:
    conversation = session.scalars(select(Conversation).where(Conversation.uuid == conversation_id)).first()
    if conversation is None:
        raise NotFoundError(f"Conversation not found: {conversation_id}")

    parent = None
    if parent_message_id is not None:
        parent = session.scalars(select(Message).where(Message.uuid == parent_message_id)).first()
        if parent is None:
            raise NotFoundError(f"Parent message not found: {parent_message_id}")

    row = Message(
        conversation_id=conversation.id,
        parent_message_id=parent.id if parent is not None else None,
        role=MessageRole(role).value,
        content=content,
        status=MessageStatus(status).value,
        metadata_=_storage_metadata(metadata),
    )
    session.add(row)
    session.flush()
    return row


# =============================================================================
# CONVERSATIONS
# =============================================================================


class ConversationRepository(BaseRepository):
    async def create(self, user_id: str, title: str = DEFAULT_CONVERSATION_TITLE) -> ConversationRecord:
        def work(session: Session) -> ConversationRecord:
            row = Conversation(creator_id=user_id, title=title, message_count=0)
            session.add(row)
            session.flush()
            return _conversation_record(row)

        return await self._run(work)

    async def get(self, conversation_id: str, include_deleted: bool = False) -> ConversationRecord | None:
        def work(session: Session) -> ConversationRecord | None:
            stmt = select(Conversation).where(Conversation.uuid == conversation_id)
            if not include_deleted:
                stmt = stmt.where(Conversation.deleted_at.is_(None))
            row = session.scalars(stmt).first()
            return _conversation_record(row) if row is not None else None

        return await self._run(work)

    async def list_by_user(self, user_id: str) -> list[ConversationRecord]:
        """Live conversations of ``user_id``, most recently updated first."""

        def work(session: Session) -> list[ConversationRecord]:
            stmt = (
                select(Conversation)
                .where(Conversation.creator_id == user_id, Conversation.deleted_at.is_(None))
                .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
            )
            return [_conversation_record(row) for row in session.scalars(stmt)]

        return await self._run(work)

    async def update_title(self, conversation_id: str, title: str) -> ConversationRecord | None:
        def work(session: Session) -> ConversationRecord | None:
            row = session.scalars(
                select(Conversation).where(
                    Conversation.uuid == conversation_id, Conversation.deleted_at.is_(None)
                )
            ).first()
            if row is None:
                return None
            row.title = title
            session.flush()
            return _conversation_record(row)

        return await self._run(work)

    async def soft_delete(self, conversation_id: str) -> bool:
        def work(session: Session) -> bool:
            result = session.execute(
                update(Conversation)
                .where(Conversation.uuid == conversation_id, Conversation.deleted_at.is_(None))
                .values(deleted_at=utcnow())
            )
            return result.rowcount > 0

        return await self._run(work)

    async def increment_message_count(self, conversation_id: str, by: int = 2) -> bool:
        """Atomically add ``by`` to the message count and touch ``updated_at``."""
        return await self._run(lambda session: _increment_count(session, conversation_id, by))


# =============================================================================
# MESSAGES
# =============================================================================


class MessageRepository(BaseRepository):
    async def create(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        status: MessageStatus = MessageStatus.COMPLETED,
        metadata: MessageMetadata | dict[str, Any] | None = None,
        parent_message_id: str | None = None,
    ) -> MessageRecord:
        def work(session: Session) -> MessageRecord:
            row = _insert_message(session, conversation_id, role, content, status, metadata, parent_message_id)
            return _message_record(row)

        return await self._run(work)

    async def create_reply(
        self,
        conversation_id: str,
        content: str,
        parent_message_id: str,
        metadata: MessageMetadata | dict[str, Any] | None = None,
        count_increment: int = 2,
    ) -> MessageRecord:
        """
        Store a completed assistant reply and add ``count_increment`` to the
        conversation's message count in one transaction.

        Either both writes are committed or neither is.
        """

        def work(session: Session) -> MessageRecord:
            row = _insert_message(
                session,
                conversation_id,
                MessageRole.ASSISTANT,
                content,
                MessageStatus.COMPLETED,
                metadata,
                parent_message_id,
            )
            if not _increment_count(session, conversation_id, count_increment):
                raise NotFoundError(f"Conversation not found: {conversation_id}")
            return _message_record(row)

        return await self._run(work)

    async def get(self, message_id: str) -> MessageRecord | None:
        def work(session: Session) -> MessageRecord | None:
            row = session.scalars(select(Message).where(Message.uuid == message_id)).first()
            return _message_record(row) if row is not None else None

        return await self._run(work)

    async def list_by_conversation(self, conversation_id: str) -> list[MessageRecord]:
        """All messages of a conversation in chronological order."""

        def work(session: Session) -> list[MessageRecord]:
            stmt = (
                select(Message)
                .join(Conversation, Message.conversation_id == Conversation.id)
                .where(Conversation.uuid == conversation_id)
                .order_by(Message.created_at.asc(), Message.id.asc())
            )
            return [_message_record(row) for row in session.scalars(stmt)]

        return await self._run(work)

    async def recent(self, conversation_id: str, limit: int = 10) -> list[MessageRecord]:
        """The last ``limit`` messages of a conversation, oldest first."""

        def work(session: Session) -> list[MessageRecord]:
            stmt = (
                select(Message)
                .join(Conversation, Message.conversation_id == Conversation.id)
                .where(Conversation.uuid == conversation_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
            )
            rows = list(session.scalars(stmt))
            rows.reverse()
            return [_message_record(row) for row in rows]

        return await self._run(work)

    async def update_status(self, message_id: str, status: MessageStatus) -> MessageRecord | None:
        def work(session: Session) -> MessageRecord | None:
            row = session.scalars(select(Message).where(Message.uuid == message_id)).first()
            if row is None:
                return None
            row.status = MessageStatus(status).value
            session.flush()
            return _message_record(row)

        return await self._run(work)


# =============================================================================
# FEEDBACK
# =============================================================================


class FeedbackRepository(BaseRepository):
    async def create(self, data: FeedbackCreate) -> FeedbackRecord:
        def work(session: Session) -> FeedbackRecord:
            message = session.scalars(select(Message).where(Message.uuid == data.message_id)).first()
            if message is None:
                raise NotFoundError(f"Message not found: {data.message_id}")
            row = MessageFeedback(
                message_id=message.id,
                user_id=data.user_id,
                rating=data.rating.value,
                category=data.category,
                comment=data.comment,
                suggested_improvement=data.suggested_improvement,
            )
            session.add(row)
            session.flush()
            return _feedback_record(row)

        return await self._run(work)

    async def list_by_message(self, message_id: str) -> list[FeedbackRecord]:
        def work(session: Session) -> list[FeedbackRecord]:
            stmt = (
                select(MessageFeedback)
                .join(Message, MessageFeedback.message_id == Message.id)
                .where(Message.uuid == message_id)
                .order_by(MessageFeedback.created_at.desc(), MessageFeedback.id.desc())
            )
            return [_feedback_record(row) for row in session.scalars(stmt)]

        return await self._run(work)

    async def list_by_user(self, user_id: str, limit: int = 50) -> list[FeedbackRecord]:
        def work(session: Session) -> list[FeedbackRecord]:
            stmt = (
                select(MessageFeedback)
                .where(MessageFeedback.user_id == user_id)
                .order_by(MessageFeedback.created_at.desc(), MessageFeedback.id.desc())
                .limit(limit)
            )
            return [_feedback_record(row) for row in session.scalars(stmt)]

        return await self._run(work)


# =============================================================================
# KNOWLEDGE ITEMS
# =============================================================================


class KnowledgeRepository(BaseRepository):
    async def create(self, data: KnowledgeItemCreate, embedding: list[float] | None = None) -> KnowledgeItemRecord:
        def work(session: Session) -> KnowledgeItemRecord:
            parent = None
            if data.parent_id is not None:
                parent = session.scalars(
                    select(KnowledgeItem).where(KnowledgeItem.uuid == data.parent_id)
                ).first()
                if parent is None:
                    raise NotFoundError(f"Parent knowledge item not found: {data.parent_id}")

            row = KnowledgeItem(
                parent_id=parent.id if parent is not None else None,
                title=data.title,
                description=data.description,
                type=data.type.value,
                content=data.content,
                file_url=data.file_url,
                file_size=data.file_size,
                file_type=data.file_type,
                metadata_=dict(data.metadata),
                embedding=embedding,
                processed_at=utcnow() if embedding is not None else None,
                created_by=data.created_by,
            )
            session.add(row)
            session.flush()
            return _knowledge_record(row)

        return await self._run(work)

    async def get(self, item_id: str) -> KnowledgeItemRecord | None:
        def work(session: Session) -> KnowledgeItemRecord | None:
            row = session.scalars(select(KnowledgeItem).where(KnowledgeItem.uuid == item_id)).first()
            return _knowledge_record(row) if row is not None else None

        return await self._run(work)

    async def update(self, item_id: str, changes: dict[str, Any]) -> KnowledgeItemRecord | None:
        """
        Apply column changes to one item.

        ``changes`` uses column attribute names; ``metadata`` maps to the
        metadata column and ``embedding`` also stamps ``processed_at``.
        """

        def work(session: Session) -> KnowledgeItemRecord | None:
            row = session.scalars(select(KnowledgeItem).where(KnowledgeItem.uuid == item_id)).first()
            if row is None:
                return None
            for key, value in changes.items():
                if key == "metadata":
                    row.metadata_ = dict(value or {})
                elif key == "type":
                    row.type = getattr(value, "value", value)
                elif key == "embedding":
                    row.embedding = value
                    row.processed_at = utcnow() if value is not None else None
                else:
                    setattr(row, key, value)
            session.flush()
            return _knowledge_record(row)

        return await self._run(work)

    async def delete(self, item_id: str) -> bool:
        """Hard delete; chunk children go with their parent."""

        def work(session: Session) -> bool:
            row = session.scalars(select(KnowledgeItem).where(KnowledgeItem.uuid == item_id)).first()
            if row is None:
                return False
            session.delete(row)
            return True

        return await self._run(work)

    async def list_with_embeddings(self) -> list[KnowledgeItemRecord]:
        def work(session: Session) -> list[KnowledgeItemRecord]:
            stmt = (
                select(KnowledgeItem)
                .where(KnowledgeItem.embedding.is_not(None))
                .order_by(KnowledgeItem.id.asc())
            )
            return [_knowledge_record(row) for row in session.scalars(stmt)]

        return await self._run(work)

    async def recent(self, limit: int = 10) -> list[KnowledgeItemRecord]:
        def work(session: Session) -> list[KnowledgeItemRecord]:
            stmt = (
                select(KnowledgeItem)
                .order_by(KnowledgeItem.created_at.desc(), KnowledgeItem.id.desc())
                .limit(limit)
            )
            return [_knowledge_record(row) for row in session.scalars(stmt)]

        return await self._run(work)

    async def keyword_search(self, query: str, limit: int) -> list[KnowledgeItemRecord]:
        """
        Full-text match over title, description and content.

        PostgreSQL uses ``websearch_to_tsquery`` against an English
        ``tsvector``; other dialects require every query term to appear
        case-insensitively in one of the three fields. Results keep source
        (insertion) order.
        """
        terms = [term.lower() for term in _TERM_PATTERN.findall(query or "")]
        if not terms:
            return []

        def work(session: Session) -> list[KnowledgeItemRecord]:
            title = func.coalesce(KnowledgeItem.title, "")
            description = func.coalesce(KnowledgeItem.description, "")
            content = func.coalesce(KnowledgeItem.content, "")

            if session.get_bind().dialect.name == "postgresql":
                document = func.to_tsvector("english", title + " " + description + " " + content)
                condition = document.op("@@")(func.websearch_to_tsquery("english", query))
            else:
                condition = and_(
                    *[
                        or_(
                            func.lower(title).contains(term, autoescape=True),
                            func.lower(description).contains(term, autoescape=True),
                            func.lower(content).contains(term, autoescape=True),
                        )
                        for term in terms
                    ]
                )

            stmt = select(KnowledgeItem).where(condition).order_by(KnowledgeItem.id.asc()).limit(limit)
            return [_knowledge_record(row) for row in session.scalars(stmt)]

        return await self._run(work)


# =============================================================================
# PERSONALITY
# =============================================================================


class PersonalityRepository(BaseRepository):
    async def get_current(self) -> PersonalityRecord | None:
        def work(session: Session) -> PersonalityRecord | None:
            row = session.scalars(
                select(Personality).order_by(Personality.last_built_at.desc(), Personality.id.desc())
            ).first()
            return _personality_record(row) if row is not None else None

        return await self._run(work)

    async def replace(
        self,
        name: str,
        system_prompt: str,
        description: str | None = None,
        metadata: PersonalityMetadata | dict[str, Any] | None = None,
    ) -> PersonalityRecord:
        """
        Replace the singleton in one transaction.

        The new ``last_built_at`` is always strictly later than the one it
        replaces, even when the clock has not advanced.
        """

        def work(session: Session) -> PersonalityRecord:
            previous = session.scalar(select(func.max(Personality.last_built_at)))
            built_at = utcnow()
            if previous is not None and built_at <= previous:
                built_at = previous + timedelta(microseconds=1)

            session.execute(delete(Personality))
            row = Personality(
                name=name,
                description=description,
                system_prompt=system_prompt,
                metadata_=_storage_metadata(metadata),
                last_built_at=built_at,
            )
            session.add(row)
            session.flush()
            return _personality_record(row)

        return await self._run(work)

    async def count(self) -> int:
        def work(session: Session) -> int:
            return session.scalar(select(func.count()).select_from(Personality)) or 0

        return await self._run(work)
