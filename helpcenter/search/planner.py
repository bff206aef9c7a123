"""Hybrid query planner.

Applies the metadata filter chain and dispatches to one of two independent
entry points:

- ``search``: keyword full-text search when query text is present, else the
  filtered set in the caller's chosen default order
- ``vector_search``: embeds the query, collects the filtered candidate ids,
  and returns the k nearest articles by cosine distance

Results of the two paths are never blended.
"""

import asyncio
import time
from typing import List, Optional

import numpy as np
import structlog

from ..clients.base import EmbeddingProvider
from ..common.errors import GenerationError, SearchError, StoreError
from ..common.metrics import MetricsCollector
from ..models import Article, ArticleOrder, SearchParams
from ..storage.base import ArticleStore
from .filters import filtered_query
from .keyword import KeywordIndexAdapter
from .vector import DEFAULT_NEIGHBOR_LIMIT, VectorIndexAdapter

logger = structlog.get_logger("helpcenter.search.planner")


def query_text(params: SearchParams) -> Optional[str]:
    """The query text of ``params``, or ``None`` when absent or blank."""
    if params.query and params.query.strip():
        return params.query
    return None


class HybridQueryPlanner:
    """Composes filters with the keyword and vector adapters.

    Parameters
    - store: Article store supplying filtering and both indexes
    - embedding_provider: Model used to embed vector-search queries
    - keyword_index: Optional pre-built keyword adapter
    - vector_index: Optional pre-built vector adapter
    - vector_limit: ``k`` for vector search
    - timeout: Default seconds allowed per external call
    - metrics: Optional collector
    """

    def __init__(
        self,
        store: ArticleStore,
        embedding_provider: EmbeddingProvider,
        keyword_index: Optional[KeywordIndexAdapter] = None,
        vector_index: Optional[VectorIndexAdapter] = None,
        vector_limit: int = DEFAULT_NEIGHBOR_LIMIT,
        timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.embedding_provider = embedding_provider
        self.keyword_index = keyword_index or KeywordIndexAdapter(store, timeout=timeout)
        self.vector_index = vector_index or VectorIndexAdapter(
            store,
            default_limit=vector_limit,
            timeout=timeout,
        )
        self.vector_limit = vector_limit
        self.timeout = timeout
        self.metrics = metrics

    async def search(
        self,
        params: SearchParams,
        order: Optional[ArticleOrder] = None,
        timeout: Optional[float] = None,
    ) -> List[Article]:
        """Filter, then keyword-rank when ``params.query`` is present."""
        start_time = time.time()
        query = filtered_query(params)

        text = query_text(params)
        if text:
            query_type = "keyword"
            results = await self.keyword_index.search(query, text, timeout=timeout)
        else:
            query_type = "filtered"
            try:
                results = await asyncio.wait_for(
                    self.store.filter_articles(query, order),
                    timeout if timeout is not None else self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise SearchError("Article listing timed out") from e
            except StoreError as e:
                logger.error("Article listing failed", error=str(e))
                raise SearchError(f"Article listing failed: {e}") from e

        self._record(query_type, start_time)
        logger.info(
            "Search completed",
            query_type=query_type,
            filters=len(query.conditions),
            order=order.value if order else None,
            results_count=len(results),
        )
        return results

    async def embed_query(self, text: str, timeout: Optional[float] = None) -> np.ndarray:
        """Embed the search query, surfacing provider failures as ``SearchError``."""
        try:
            return await asyncio.wait_for(
                self.embedding_provider.embed_one(text),
                timeout if timeout is not None else self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Query embedding timed out", query=text[:50])
            raise SearchError("Query embedding timed out") from e
        except GenerationError as e:
            logger.error("Query embedding failed", query=text[:50], error=str(e))
            raise SearchError(f"Query embedding failed: {e}") from e

    async def vector_search(
        self,
        params: SearchParams,
        timeout: Optional[float] = None,
    ) -> List[Article]:
        """Nearest articles to ``params.query`` among the filtered set.

        Returns at most ``vector_limit`` articles, closest first.
        """
        text = query_text(params)
        if not text:
            return []

        start_time = time.time()
        query_vector = await self.embed_query(text, timeout)

        try:
            candidate_ids = await asyncio.wait_for(
                self.store.filter_article_ids(filtered_query(params)),
                timeout if timeout is not None else self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise SearchError("Candidate filtering timed out") from e
        except StoreError as e:
            logger.error("Candidate filtering failed", error=str(e))
            raise SearchError(f"Candidate filtering failed: {e}") from e

        article_ids = await self.vector_index.nearest_neighbors(
            candidate_ids,
            query_vector,
            k=self.vector_limit,
            timeout=timeout,
        )

        try:
            articles = await self.store.get_articles(article_ids)
        except StoreError as e:
            raise SearchError(f"Loading vector results failed: {e}") from e

        by_id = {article.id: article for article in articles}
        results = [by_id[article_id] for article_id in article_ids if article_id in by_id]

        self._record("vector", start_time)
        logger.info(
            "Vector search completed",
            candidates=len(candidate_ids),
            results_count=len(results),
        )
        return results

    def _record(self, query_type: str, start_time: float) -> None:
        if self.metrics:
            self.metrics.record_search(query_type, time.time() - start_time)
