"""Embedding generator for article search terms.

Turns an article's indexable text into a diverse set of short search terms
(one generative call) and then into vectors (batched embedding calls), and
replaces the article's stored term set wholesale.

Execution model
- Vectors are computed before anything is deleted, so a failed provider call
  leaves the previous term set intact
- Regenerations of the same article are serialized with a per-article lock
- Embedding batches run concurrently, bounded by a semaphore
"""

import asyncio
import time
import weakref
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import numpy as np
import structlog

from ..clients.base import EmbeddingProvider, StructuredCompletionClient
from ..common.errors import GenerationError
from ..common.metrics import MetricsCollector
from ..models import Article
from ..storage.base import ArticleStore

logger = structlog.get_logger("helpcenter.embeddings.generator")

T = TypeVar("T")

SEARCH_TERMS_FIELD = "search_terms"

SEARCH_TERMS_PROMPT = """\
You will receive the title and content of a help-center article. Produce
search queries, keywords and short snippets a reader might type to find this
article; they will be embedded for semantic search.

Make the terms as varied as possible while staying close to what the article
is actually about. If nothing in the article is worth searching for, return
an empty list.

Always answer with valid JSON in exactly this shape:

{
  "search_terms": []
}
"""


def build_term_messages(article: Article) -> List[Dict[str, str]]:
    """Chat messages asking for search terms for ``article``."""
    return [
        {"role": "system", "content": SEARCH_TERMS_PROMPT},
        {"role": "user", "content": f"title: {article.title} \n content: {article.content}"},
    ]


def parse_search_terms(payload: Any) -> List[str]:
    """Validate the structured answer and return its search terms.

    Raises ``GenerationError`` unless ``payload`` is an object whose
    ``search_terms`` field is a list of strings.
    """
    if not isinstance(payload, dict):
        raise GenerationError("Search-term response is not a JSON object")
    if SEARCH_TERMS_FIELD not in payload:
        raise GenerationError(f"Search-term response has no '{SEARCH_TERMS_FIELD}' field")

    terms = payload[SEARCH_TERMS_FIELD]
    if not isinstance(terms, list) or not all(isinstance(term, str) for term in terms):
        raise GenerationError(f"'{SEARCH_TERMS_FIELD}' must be a list of strings")
    return terms


class EmbeddingGenerator:
    """Owns the embedding-term set of each article.

    Parameters
    - store: Article store holding the embedding terms
    - completion_client: Generative model used for term extraction
    - embedding_provider: Model used to embed each term
    - batch_size: Terms per embedding request
    - concurrency: Max embedding requests in flight per regeneration
    - timeout: Default seconds allowed per external call (``None`` = no limit)
    - metrics: Optional collector
    """

    def __init__(
        self,
        store: ArticleStore,
        completion_client: StructuredCompletionClient,
        embedding_provider: EmbeddingProvider,
        batch_size: int = 64,
        concurrency: int = 4,
        timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        if batch_size < 1 or concurrency < 1:
            raise ValueError("batch_size and concurrency must be positive")
        self.store = store
        self.completion_client = completion_client
        self.embedding_provider = embedding_provider
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.timeout = timeout
        self.metrics = metrics
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, article_id: int) -> asyncio.Lock:
        lock = self._locks.get(article_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[article_id] = lock
        return lock

    async def _bounded(self, call: Awaitable[T], timeout: Optional[float], operation: str) -> T:
        """Await ``call`` under ``timeout``, mapping a timeout to ``GenerationError``."""
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as e:
            logger.error("External call timed out", operation=operation, timeout=timeout)
            raise GenerationError(f"{operation} timed out after {timeout}s") from e

    async def generate_search_terms(self, article: Article, timeout: Optional[float] = None) -> List[str]:
        """Ask the generative model for search terms describing ``article``."""
        payload = await self._bounded(
            self.completion_client.complete_json(build_term_messages(article)),
            timeout,
            "search-term extraction",
        )
        return parse_search_terms(payload)

    async def embed_terms(self, terms: List[str], timeout: Optional[float] = None) -> List[np.ndarray]:
        """Embed ``terms`` in bounded concurrent batches, preserving order."""
        if not terms:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)
        batches = [terms[i:i + self.batch_size] for i in range(0, len(terms), self.batch_size)]

        async def embed_batch(batch: List[str]) -> List[np.ndarray]:
            async with semaphore:
                vectors = await self._bounded(
                    self.embedding_provider.embed(batch),
                    timeout,
                    "term embedding",
                )
            if len(vectors) != len(batch):
                raise GenerationError(
                    f"Embedding provider returned {len(vectors)} vectors for {len(batch)} terms"
                )
            return vectors

        tasks = [asyncio.ensure_future(embed_batch(batch)) for batch in batches]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        return [vector for batch_vectors in results for vector in batch_vectors]

    async def regenerate(self, article: Article, timeout: Optional[float] = None) -> int:
        """Rebuild the article's embedding-term set.

        Returns the number of stored terms. ``GenerationError`` propagates to
        the caller; no retry is attempted.
        """
        if article.id is None:
            raise ValueError("Embeddings can only be generated for persisted articles")

        timeout = timeout if timeout is not None else self.timeout
        start_time = time.time()

        async with self._lock_for(article.id):
            try:
                terms = await self.generate_search_terms(article, timeout)
                vectors = await self.embed_terms(terms, timeout)
                stored = await self.store.replace_embedding_terms(
                    article.id,
                    list(zip(terms, vectors))
                )
            except Exception as e:
                if self.metrics:
                    self.metrics.record_embedding_regeneration("failure", time.time() - start_time)
                logger.error("Embedding regeneration failed", article_id=article.id, error=str(e))
                raise

        duration = time.time() - start_time
        if self.metrics:
            self.metrics.record_embedding_regeneration("success", duration, stored)
        logger.info(
            "Regenerated article embeddings",
            article_id=article.id,
            term_count=stored,
            duration_ms=duration * 1000,
        )
        return stored
