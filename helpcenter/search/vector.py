"""Vector index adapter.

Nearest-neighbour lookup over embedding-term vectors by cosine distance.
Scoring is always restricted to the terms of an explicit candidate set of
article ids; an empty candidate set yields an empty result and never widens
into a global search.
"""

import asyncio
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..common.errors import SearchError, StoreError
from ..storage.base import ArticleStore

logger = structlog.get_logger("helpcenter.search.vector")

DEFAULT_NEIGHBOR_LIMIT = 5


def cosine_distances(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Cosine distance (``1 - cosine similarity``) of each row to ``vector``.

    Rows or queries with zero norm get distance 1.0.
    """
    matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float32))
    vector = np.asarray(vector, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    with np.errstate(divide="ignore", invalid="ignore"):
        similarity = np.where(norms > 0, (matrix @ vector) / norms, 0.0)
    return 1.0 - similarity


def rank_by_cosine_distance(
    rows: Sequence[Tuple[int, np.ndarray]],
    query_vector: np.ndarray,
    limit: int
) -> List[Tuple[int, float]]:
    """Brute-force top-``limit`` articles for ``(article_id, vector)`` rows.

    Each article is scored by its closest row. Ties are broken by article id
    so results are deterministic.
    """
    if not rows or limit <= 0:
        return []

    distances = cosine_distances(np.stack([vector for _, vector in rows]), query_vector)

    best: Dict[int, float] = {}
    for (article_id, _), distance in zip(rows, distances.tolist()):
        if article_id not in best or distance < best[article_id]:
            best[article_id] = distance

    ranked = sorted(best.items(), key=lambda item: (item[1], item[0]))
    return ranked[:limit]


class VectorIndexAdapter:
    """Thin, filtered front for the store's vector capability.

    Parameters
    - store: Backend implementing ``ArticleStore.nearest_article_ids``
    - vector_dimension: Expected query dimensionality (``None`` skips check)
    - default_limit: ``k`` used when the caller passes none
    - timeout: Default seconds allowed for the store call
    """

    def __init__(
        self,
        store: ArticleStore,
        vector_dimension: Optional[int] = None,
        default_limit: int = DEFAULT_NEIGHBOR_LIMIT,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.vector_dimension = vector_dimension
        self.default_limit = default_limit
        self.timeout = timeout

    async def scored_neighbors(
        self,
        candidate_ids: Iterable[int],
        query_vector: np.ndarray,
        k: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[Tuple[int, float]]:
        """Return ``(article_id, distance)`` pairs, closest first."""
        candidates = list(dict.fromkeys(candidate_ids))
        limit = k if k is not None else self.default_limit
        if not candidates:
            logger.debug("Empty candidate set, skipping vector lookup")
            return []

        vector = self._ensure_vector_dimension(query_vector)
        start_time = time.time()
        try:
            neighbors = await asyncio.wait_for(
                self.store.nearest_article_ids(candidates, vector, limit),
                timeout if timeout is not None else self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Vector lookup timed out", candidates=len(candidates))
            raise SearchError("Vector lookup timed out") from e
        except StoreError as e:
            logger.error("Vector lookup failed", candidates=len(candidates), error=str(e))
            raise SearchError(f"Vector lookup failed: {e}") from e

        # Backends must not return ids outside the candidate set.
        allowed = set(candidates)
        neighbors = [(article_id, distance) for article_id, distance in neighbors if article_id in allowed]

        logger.info(
            "Vector lookup completed",
            candidates=len(candidates),
            limit=limit,
            results_count=len(neighbors),
            duration_ms=(time.time() - start_time) * 1000,
        )
        return neighbors[:limit]

    async def nearest_neighbors(
        self,
        candidate_ids: Iterable[int],
        query_vector: np.ndarray,
        k: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[int]:
        """Article ids sorted by ascending cosine distance, at most ``k``."""
        neighbors = await self.scored_neighbors(candidate_ids, query_vector, k=k, timeout=timeout)
        return [article_id for article_id, _ in neighbors]

    def _ensure_vector_dimension(self, vector: Iterable[float]) -> np.ndarray:
        """Ensure a query vector matches the expected dimensionality."""
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1:
            raise SearchError("Query vector must be one-dimensional")

        if self.vector_dimension is not None and array.shape[0] != self.vector_dimension:
            raise SearchError(
                f"Expected vector dimension {self.vector_dimension}, "
                f"got {array.shape[0]}"
            )
        return array
