"""
Knowledge Search
================

Semantic, keyword and hybrid retrieval over the knowledge corpus.

- semantic: embed the query and rank every stored embedding by cosine score
- keyword: full-text match, fixed nominal score, source order
- hybrid: both concurrently with ``ceil(limit / 2)`` each, semantic results
  first, deduplicated by item id

Sub-search failures are logged and degrade to an empty result set.

Usage:
    search = KnowledgeSearch(knowledge_repo, embedder)
    results = await search.search("how do refunds work", limit=3, threshold=0.7)
"""

import asyncio
import logging
import math
from enum import Enum

from ..core.repositories import KnowledgeRepository
from ..core.schemas import SearchResult
from ..llms.base import Embedder
from .similarity import rank_by_similarity

logger = logging.getLogger(__name__)

KEYWORD_SCORE = 0.8
RECENT_SCORE = 1.0


class SearchMode(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class KnowledgeSearch:
    """Runs and merges knowledge sub-searches."""

    def __init__(self, repository: KnowledgeRepository, embedder: Embedder):
        self.repository = repository
        self.embedder = embedder

    async def search(
        self,
        query: str,
        limit: int = 5,
        threshold: float = 0.7,
        mode: SearchMode = SearchMode.HYBRID,
    ) -> list[SearchResult]:
        if limit <= 0:
            return []

        mode = SearchMode(mode)
        if mode == SearchMode.SEMANTIC:
            return await self.semantic_search(query, limit, threshold)
        if mode == SearchMode.KEYWORD:
            return await self.keyword_search(query, limit)
        return await self.hybrid_search(query, limit, threshold)

    async def semantic_search(self, query: str, limit: int, threshold: float) -> list[SearchResult]:
        try:
            query_vector = await self.embedder.embed(query)
            items = await self.repository.list_with_embeddings()
        except Exception as e:
            logger.error(f"Semantic search failed, returning no results: {e}", exc_info=True)
            return []

        results = rank_by_similarity(query_vector, items, threshold, limit)
        logger.debug(f"Semantic search matched {len(results)} of {len(items)} embedded items")
        return results

    async def keyword_search(self, query: str, limit: int) -> list[SearchResult]:
        try:
            items = await self.repository.keyword_search(query, limit)
        except Exception as e:
            logger.error(f"Keyword search failed, returning no results: {e}", exc_info=True)
            return []
        return [SearchResult.from_item(item, KEYWORD_SCORE) for item in items[:limit]]

    async def hybrid_search(self, query: str, limit: int, threshold: float) -> list[SearchResult]:
        per_mode = math.ceil(limit / 2)
        semantic, keyword = await asyncio.gather(
            self.semantic_search(query, per_mode, threshold),
            self.keyword_search(query, per_mode),
        )
        return merge_results(semantic, keyword, limit)

    async def top_recent(self, limit: int = 10) -> list[SearchResult]:
        """Most recently created items at full score; seeds personality synthesis."""
        items = await self.repository.recent(limit)
        return [SearchResult.from_item(item, RECENT_SCORE) for item in items]


def merge_results(primary: list[SearchResult], secondary: list[SearchResult], limit: int) -> list[SearchResult]:
    """Concatenate, keep the first occurrence of each id, truncate."""
    seen: set[str] = set()
    merged = []
    for result in [*primary, *secondary]:
        if result.id in seen:
            continue
        seen.add(result.id)
        merged.append(result)
    return merged[:limit]
