"""
Docent - Pydantic Schemas
=========================

Plain structured inputs and outputs of every caller-facing operation, the
typed metadata maps stored on messages, knowledge items and the personality,
and the events of a streamed turn.

Metadata maps recognize a closed set of keys (serialized under their
camelCase storage names) and keep any extra keys they are given.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    FeedbackRatingEnum as FeedbackRating,
    KnowledgeTypeEnum as KnowledgeType,
    MessageRoleEnum as MessageRole,
    MessageStatusEnum as MessageStatus,
)


# Base Schemas
class BaseSchema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, str_strip_whitespace=True
    )


class RecordSchema(BaseModel):
    """Stored or generated text is returned exactly as it was written."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TimestampMixin(BaseModel):
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MetadataSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# Metadata Schemas
class MessageMetadata(MetadataSchema):
    context: dict[str, Any] | None = None
    knowledge_used: bool | None = Field(default=None, alias="knowledgeUsed")
    knowledge_item_count: int | None = Field(default=None, alias="knowledgeItemCount")
    streamed: bool | None = None
    user_context: dict[str, Any] | None = Field(default=None, alias="userContext")


class KnowledgeMetadata(MetadataSchema):
    file_path: str | None = Field(default=None, alias="filePath")
    language: str | None = None
    file_size: int | None = Field(default=None, alias="fileSize")
    is_chunked: bool | None = Field(default=None, alias="isChunked")
    original_size: int | None = Field(default=None, alias="originalSize")
    cleaned_size: int | None = Field(default=None, alias="cleanedSize")
    chunk_index: int | None = Field(default=None, alias="chunkIndex")
    start_line: int | None = Field(default=None, alias="startLine")
    end_line: int | None = Field(default=None, alias="endLine")
    chunk_size: int | None = Field(default=None, alias="chunkSize")
    parent_uuid: str | None = Field(default=None, alias="parentUuid")


class PersonalityMetadata(MetadataSchema):
    tone: str | None = None
    domain: str | None = None


# Conversation Schemas
class ConversationCreate(BaseSchema):
    user_id: str = Field(..., min_length=1, max_length=255)
    title: str = Field(default="New Conversation", min_length=1)


class ConversationRecord(RecordSchema, TimestampMixin):
    id: str
    creator_id: str
    title: str
    message_count: int = 0
    deleted_at: datetime | None = None


# Message Schemas
class MessageRecord(RecordSchema, TimestampMixin):
    id: str
    conversation_id: str
    parent_message_id: str | None = None
    role: MessageRole
    content: str
    status: MessageStatus = MessageStatus.COMPLETED
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)


class ConversationDetail(RecordSchema):
    meta: ConversationRecord
    messages: list[MessageRecord] = Field(default_factory=list)


# Feedback Schemas
class FeedbackCreate(BaseSchema):
    message_id: str
    user_id: str = Field(..., min_length=1, max_length=255)
    rating: FeedbackRating
    category: str | None = Field(default=None, max_length=100)
    comment: str | None = None
    suggested_improvement: str | None = None


class FeedbackRecord(RecordSchema):
    id: str
    message_id: str
    user_id: str
    rating: FeedbackRating
    category: str | None = None
    comment: str | None = None
    suggested_improvement: str | None = None
    created_at: datetime | None = None


# Knowledge Schemas
class KnowledgeItemCreate(RecordSchema):
    title: str = Field(..., min_length=1)
    description: str | None = None
    type: KnowledgeType = KnowledgeType.DOCUMENT
    content: str | None = None
    file_url: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    parent_id: str | None = None
    created_by: str = "system"


class KnowledgeItemUpdate(RecordSchema):
    """Partial update; only fields explicitly set are applied."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    type: KnowledgeType | None = None
    content: str | None = None
    file_url: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    metadata: dict[str, Any] | None = None


class KnowledgeItemRecord(RecordSchema, TimestampMixin):
    id: str
    parent_id: str | None = None
    title: str
    description: str | None = None
    type: KnowledgeType
    content: str | None = None
    file_url: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    metadata: KnowledgeMetadata = Field(default_factory=KnowledgeMetadata)
    # Stored vector as read back; malformed values are kept so they score 0.
    embedding: Any = None
    processed_at: datetime | None = None
    created_by: str


class SearchResult(RecordSchema):
    id: str
    parent_id: str | None = None
    title: str
    description: str | None = None
    type: KnowledgeType
    content: str | None = None
    metadata: KnowledgeMetadata = Field(default_factory=KnowledgeMetadata)
    score: float

    @classmethod
    def from_item(cls, item: KnowledgeItemRecord, score: float) -> "SearchResult":
        return cls(
            id=item.id,
            parent_id=item.parent_id,
            title=item.title,
            description=item.description,
            type=item.type,
            content=item.content,
            metadata=item.metadata,
            score=score,
        )


# Personality Schemas
class PersonalityProfile(BaseSchema):
    name: str
    tone: str | None = None
    description: str | None = None
    domain: str | None = None


class PersonalityRecord(RecordSchema):
    id: str
    name: str
    description: str | None = None
    system_prompt: str
    metadata: PersonalityMetadata = Field(default_factory=PersonalityMetadata)
    last_built_at: datetime


class Personality(RecordSchema):
    """The active system prompt plus the profile describing it."""

    system_prompt: str
    profile: PersonalityProfile
    last_built_at: datetime | None = None

    @classmethod
    def from_record(cls, record: PersonalityRecord) -> "Personality":
        return cls(
            system_prompt=record.system_prompt,
            profile=PersonalityProfile(
                name=record.name,
                tone=record.metadata.tone,
                description=record.description,
                domain=record.metadata.domain,
            ),
            last_built_at=record.last_built_at,
        )


class BuildPersonalityInput(BaseSchema):
    custom_instructions: str | None = None
    refresh: bool = True
    strategy: Literal["kb_summary"] = "kb_summary"


# Turn Schemas
class SendMessageInput(RecordSchema):
    conversation_id: str | None = None
    user_id: str | None = None
    message: str
    context: dict[str, Any] | None = None


class SendMessageOutput(RecordSchema):
    content: str
    conversation_id: str
    message_id: str


# Stream Events
class StartEvent(RecordSchema):
    type: Literal["start"] = "start"
    conversation_id: str


class DeltaEvent(RecordSchema):
    type: Literal["delta"] = "delta"
    content: str


class FinalEvent(RecordSchema):
    type: Literal["final"] = "final"
    content: str
    message_id: str
    conversation_id: str


class ErrorEvent(RecordSchema):
    type: Literal["error"] = "error"
    message: str


StreamEvent = StartEvent | DeltaEvent | FinalEvent | ErrorEvent
