"""Knowledge retrieval: cosine similarity and semantic/keyword/hybrid search."""

from .knowledge_search import KnowledgeSearch, SearchMode, merge_results
from .similarity import cosine_similarity, rank_by_similarity

__all__ = [
    "KnowledgeSearch",
    "SearchMode",
    "merge_results",
    "cosine_similarity",
    "rank_by_similarity",
]
