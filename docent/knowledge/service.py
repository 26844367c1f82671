"""
Knowledge item management.

Creating or updating an item with content embeds that content. Embedding
failures are not fatal: the item is stored without a vector and stays
reachable through keyword search.
"""

import logging
from collections.abc import Sequence

from ..core.repositories import KnowledgeRepository
from ..core.schemas import (
    KnowledgeItemCreate,
    KnowledgeItemRecord,
    KnowledgeItemUpdate,
    SearchResult,
)
from ..llms.base import Embedder
from ..resilience import NotFoundError

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "Relevant information from knowledge base:\n\n"
CONTEXT_SNIPPET_CHARS = 300


def format_context(results: Sequence[SearchResult]) -> str:
    """Render search results as the knowledge block appended to the system prompt."""
    if not results:
        return ""
    context = CONTEXT_HEADER
    for result in results:
        snippet = (result.content or result.description or "")[:CONTEXT_SNIPPET_CHARS]
        context += f"- {result.title}: {snippet}\n"
    return context


class KnowledgeService:
    def __init__(self, repository: KnowledgeRepository, embedder: Embedder):
        self.repository = repository
        self.embedder = embedder

    async def _embed_or_none(self, text: str, label: str) -> list[float] | None:
        try:
            return await self.embedder.embed(text)
        except Exception as e:
            logger.warning(f"Embedding failed for {label}, storing without vector: {e}")
            return None

    async def create_item(self, data: KnowledgeItemCreate) -> str:
        """Store a new item and return its identifier."""
        embedding = None
        if data.content:
            embedding = await self._embed_or_none(data.content, f"'{data.title}'")

        record = await self.repository.create(data, embedding=embedding)
        logger.info(
            f"Created knowledge item {record.id} ({record.type.value})",
            extra={"extra_data": {"item_id": record.id, "embedded": embedding is not None}},
        )
        return record.id

    async def get_item(self, item_id: str) -> KnowledgeItemRecord:
        record = await self.repository.get(item_id)
        if record is None:
            raise NotFoundError(f"Knowledge item not found: {item_id}")
        return record

    async def update_item(self, item_id: str, updates: KnowledgeItemUpdate) -> KnowledgeItemRecord:
        """
        Apply a partial update.

        New content is re-embedded; clearing content drops the embedding.
        """
        changes = updates.model_dump(exclude_unset=True)
        if "content" in changes:
            if changes["content"]:
                changes["embedding"] = await self._embed_or_none(changes["content"], f"item {item_id}")
            else:
                changes["embedding"] = None

        record = await self.repository.update(item_id, changes)
        if record is None:
            raise NotFoundError(f"Knowledge item not found: {item_id}")
        logger.info(f"Updated knowledge item {item_id}: {sorted(changes)}")
        return record

    async def delete_item(self, item_id: str) -> None:
        if not await self.repository.delete(item_id):
            raise NotFoundError(f"Knowledge item not found: {item_id}")
        logger.info(f"Deleted knowledge item {item_id}")
