"""Semantic similarity over pre-computed note embeddings."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from vaultsearch.models import Index, SimilarityHit
from vaultsearch.utils.text import extract_title


class DimensionMismatchError(ValueError):
    """Raised when two vectors of different length are compared."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: {expected} vs {actual}")
        self.expected = expected
        self.actual = actual


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine of the angle between `a` and `b`, in [-1, 1].

    Zero vectors have similarity 0 with everything.
    """
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise DimensionMismatchError(left.shape[0], right.shape[0])

    denominator = float(np.linalg.norm(left)) * float(np.linalg.norm(right))
    if denominator == 0.0:
        return 0.0
    score = float(np.dot(left, right)) / denominator
    # Guard against rounding drift just outside the valid range
    return max(-1.0, min(1.0, score))


class SimilarityEngine:
    """Ranks indexed notes against a query vector."""

    def __init__(self, index: Index) -> None:
        self.index = index

    def rank(
        self,
        query: Sequence[float] | np.ndarray,
        *,
        limit: int,
        threshold: float,
        exclude: str | None = None,
    ) -> List[SimilarityHit]:
        vector = np.asarray(query, dtype=np.float64)
        hits: List[SimilarityHit] = []
        for document_id, entry in self.index.items():
            if exclude is not None and document_id == exclude:
                continue
            score = cosine_similarity(vector, entry.vector)
            if score >= threshold:
                hits.append(
                    SimilarityHit(document_id=document_id, title=extract_title(document_id), score=score)
                )

        # Stable sort keeps index order among equal scores
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[: max(limit, 0)]

    def similar_to(
        self, document_id: str, *, limit: int, threshold: float
    ) -> List[SimilarityHit] | None:
        """Rank notes against an indexed note, omitting the note itself.

        Returns None when `document_id` is not indexed.
        """
        entry = self.index.get(document_id)
        if entry is None:
            return None
        return self.rank(entry.vector, limit=limit, threshold=threshold, exclude=document_id)
