"""Keyword index adapter.

Relevance-ranked full-text search over article title, description and
content, delegated to the store's keyword capability. The final query token
is prefix-matched; ties are ordered however the engine orders them.
"""

import asyncio
import time
from typing import List, Optional

import structlog

from ..common.errors import SearchError, StoreError
from ..models import Article
from ..storage.base import ArticleQuery, ArticleStore

logger = structlog.get_logger("helpcenter.search.keyword")


class KeywordIndexAdapter:
    """Thin front for ``ArticleStore.keyword_search``."""

    def __init__(self, store: ArticleStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout

    async def search(
        self,
        query: ArticleQuery,
        text: str,
        timeout: Optional[float] = None
    ) -> List[Article]:
        """Run a keyword search over the articles selected by ``query``.

        ``text`` must be non-empty; the planner never calls this without it.
        """
        if not text or not text.strip():
            raise ValueError("Keyword search requires query text")

        start_time = time.time()
        try:
            articles = await asyncio.wait_for(
                self.store.keyword_search(query, text),
                timeout if timeout is not None else self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Keyword search timed out", query=text[:50])
            raise SearchError("Keyword search timed out") from e
        except StoreError as e:
            logger.error("Keyword search failed", query=text[:50], error=str(e))
            raise SearchError(f"Keyword search failed: {e}") from e

        logger.info(
            "Keyword search completed",
            query=text[:50],
            results_count=len(articles),
            duration_ms=(time.time() - start_time) * 1000,
        )
        return articles
