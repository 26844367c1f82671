"""
Vector similarity for knowledge retrieval.

Stored embeddings can be corrupt (wrong length, wrong type, unparsed text).
Such vectors score 0 instead of raising so one bad row never breaks a search.
"""

import logging
import math
from collections.abc import Iterable
from typing import Any

import numpy as np

from ..core.schemas import KnowledgeItemRecord, SearchResult
from ..resilience import MalformedDataError

logger = logging.getLogger(__name__)


def as_vector(value: Any) -> np.ndarray:
    """
    Convert ``value`` into a one-dimensional float array.

    Raises:
        MalformedDataError: if ``value`` is not a non-empty flat numeric sequence.
    """
    if value is None or isinstance(value, (str, bytes, dict)):
        raise MalformedDataError(f"Not a vector: {type(value).__name__}")
    try:
        arr = np.asarray(value, dtype=float)
    except (TypeError, ValueError) as e:
        raise MalformedDataError(f"Non-numeric vector: {e}") from e
    if arr.ndim != 1 or arr.size == 0:
        raise MalformedDataError(f"Expected a non-empty flat vector, got shape {arr.shape}")
    return arr


def _unit_scaled(arr: np.ndarray) -> np.ndarray | None:
    # Dividing by the largest component keeps the dot products finite
    # for vectors near the float range limits
    if not np.all(np.isfinite(arr)):
        return None
    peak = float(np.max(np.abs(arr)))
    if peak == 0.0:
        return None
    return arr / peak


def _cosine(a_arr: np.ndarray, b_arr: np.ndarray) -> float:
    a_scaled = _unit_scaled(a_arr)
    b_scaled = _unit_scaled(b_arr)
    if a_scaled is None or b_scaled is None:
        return 0.0

    dot = float(np.dot(a_scaled, b_scaled))
    norm_product = float(np.dot(a_scaled, a_scaled)) * float(np.dot(b_scaled, b_scaled))
    if norm_product == 0 or not math.isfinite(norm_product) or not math.isfinite(dot):
        return 0.0

    score = dot / math.sqrt(norm_product)
    if math.isnan(score):
        return 0.0
    return max(-1.0, min(1.0, score))


def cosine_similarity(a: Any, b: Any) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns 0.0 when either vector is empty, malformed, zero or the two
    lengths differ. The result is symmetric and ``cosine_similarity(a, a)``
    is exactly 1.0 for any non-zero ``a``, whatever its magnitude.
    """
    try:
        a_arr = as_vector(a)
        b_arr = as_vector(b)
    except MalformedDataError:
        return 0.0

    if a_arr.shape != b_arr.shape:
        return 0.0
    return _cosine(a_arr, b_arr)


def rank_by_similarity(
    query_vector: list[float],
    items: Iterable[KnowledgeItemRecord],
    threshold: float,
    limit: int,
) -> list[SearchResult]:
    """
    Score every item, keep those at or above ``threshold``, best first.

    Items whose embedding is missing, unparseable or of a different length
    than the query are left out whatever the threshold.
    """
    try:
        query = as_vector(query_vector)
    except MalformedDataError as e:
        logger.warning(f"Query embedding unusable: {e}")
        return []

    scored = []
    skipped = 0
    for item in items:
        try:
            candidate = as_vector(item.embedding)
        except MalformedDataError:
            skipped += 1
            continue
        if candidate.shape != query.shape:
            skipped += 1
            continue

        score = _cosine(query, candidate)
        if score >= threshold:
            scored.append(SearchResult.from_item(item, score))

    if skipped:
        logger.debug(f"Skipped {skipped} item(s) with malformed embeddings")

    # sorted() is stable, so equal scores keep source order
    return sorted(scored, key=lambda r: r.score, reverse=True)[:limit]
