"""Article service: the orchestrating write path and query entry points.

The reactive steps of an article write are explicit calls made here, in
order, rather than hooks on field mutation:

- create: validate, assign a position, insert, apply the category guard,
  regenerate embeddings
- update: persist the changes, re-sequence on a category change, regenerate
  embeddings when title/description/content changed

A ``GenerationError`` from the embedding step propagates after the row write
has happened; callers decide whether to retry out-of-band.
"""

from typing import Any, Dict, List, Mapping, Optional

import structlog

from .clients.base import EmbeddingProvider, StructuredCompletionClient
from .clients.openai_client import create_openai_client
from .common.config import HelpCenterConfig
from .common.errors import NotFoundError, ValidationError
from .common.metrics import MetricsCollector, get_metrics_collector
from .embeddings.generator import EmbeddingGenerator
from .models import INDEXED_TEXT_FIELDS, Article, ArticleOrder, ArticleStatus, SearchParams
from .ordering.positions import PositionManager
from .ordering.roots import RootResolver
from .search.keyword import KeywordIndexAdapter
from .search.planner import HybridQueryPlanner
from .search.vector import VectorIndexAdapter
from .storage.base import ArticleStore
from .storage.factory import create_article_store_from_config

logger = structlog.get_logger("helpcenter.service")

UPDATABLE_FIELDS = (
    "title",
    "description",
    "content",
    "status",
    "position",
    "category_id",
    "author_id",
    "slug",
    "meta",
)


def validate_article(article: Article) -> None:
    """Raise ``ValidationError`` listing every missing required field."""
    missing = [
        name
        for name in ("title", "content", "author_id", "account_id")
        if getattr(article, name) in (None, "")
    ]
    if missing:
        raise ValidationError(f"Article is missing required fields: {', '.join(missing)}", missing)


class ArticleService:
    """Entry point composing storage, ordering, embeddings and search."""

    def __init__(
        self,
        store: ArticleStore,
        generator: EmbeddingGenerator,
        positions: PositionManager,
        roots: RootResolver,
        planner: HybridQueryPlanner,
    ):
        self.store = store
        self.generator = generator
        self.positions = positions
        self.roots = roots
        self.planner = planner

    async def _load(self, article_id: int) -> Article:
        article = await self.store.get_article(article_id)
        if article is None:
            raise NotFoundError(article_id)
        return article

    async def create_article(self, article: Article, timeout: Optional[float] = None) -> Article:
        """Persist a new article and run its post-write steps."""
        validate_article(article)

        stored = await self.positions.create_positioned(article, self.store.insert_article)

        if stored.category_id is not None:
            await self.positions.on_category_changed(stored, previous_category_id=None, just_created=True)

        logger.info("Created article", article_id=stored.id, position=stored.position)
        await self.generator.regenerate(stored, timeout=timeout)
        return stored

    async def update_article(
        self,
        article_id: int,
        changes: Dict[str, Any],
        timeout: Optional[float] = None
    ) -> Article:
        """Apply ``changes`` to an article and run the post-write steps they require."""
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(unknown)}")

        article = await self._load(article_id)
        previous = article.copy()

        for name, value in changes.items():
            if name == "status":
                value = ArticleStatus.parse(value)
            setattr(article, name, value)

        validate_article(article)
        stored = await self.store.save_article(article)

        if stored.category_id != previous.category_id:
            await self.positions.on_category_changed(
                stored,
                previous_category_id=previous.category_id,
                just_created=False,
            )

        text_changed = [
            name for name in INDEXED_TEXT_FIELDS
            if getattr(stored, name) != getattr(previous, name)
        ]
        logger.info("Updated article", article_id=article_id, fields=sorted(changes), text_changed=text_changed)

        if text_changed:
            await self.generator.regenerate(stored, timeout=timeout)
        return stored

    async def draft(self, article_id: int) -> Article:
        """Move an article back to draft status."""
        return await self.update_article(article_id, {"status": ArticleStatus.DRAFT})

    async def delete_article(self, article_id: int) -> bool:
        return await self.store.delete_article(article_id)

    async def associate_root(self, article_id: int, candidate_id: Any) -> Optional[int]:
        """Mark ``article_id`` as a duplicate of ``candidate_id``'s group."""
        article = await self._load(article_id)
        return await self.roots.associate_root(article, candidate_id)

    async def bulk_reposition(self, positions: Mapping[Any, Any]) -> List[Any]:
        return await self.positions.bulk_reposition(positions)

    async def search(
        self,
        params: SearchParams,
        order: Optional[ArticleOrder] = None,
        timeout: Optional[float] = None,
    ) -> List[Article]:
        return await self.planner.search(params, order=order, timeout=timeout)

    async def vector_search(self, params: SearchParams, timeout: Optional[float] = None) -> List[Article]:
        return await self.planner.vector_search(params, timeout=timeout)

    async def health_check(self) -> bool:
        return await self.store.health_check()

    async def close(self) -> None:
        """Release store and provider resources."""
        await self.store.close()
        for client in (self.generator.completion_client, self.generator.embedding_provider):
            if hasattr(client, "close"):
                await client.close()


def create_article_service(
    config: HelpCenterConfig,
    store: Optional[ArticleStore] = None,
    completion_client: Optional[StructuredCompletionClient] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    metrics: Optional[MetricsCollector] = None,
) -> ArticleService:
    """Wire an ``ArticleService`` from configuration.

    Any collaborator passed explicitly replaces the one built from ``config``
    (tests inject the in-memory store and fake providers this way).
    """
    store = store or create_article_store_from_config(config)
    if completion_client is None or embedding_provider is None:
        client = create_openai_client(config)
        completion_client = completion_client or client
        embedding_provider = embedding_provider or client
    metrics = metrics or get_metrics_collector("helpcenter")

    generator = EmbeddingGenerator(
        store,
        completion_client,
        embedding_provider,
        batch_size=config.embedding_batch_size,
        concurrency=config.embedding_concurrency,
        timeout=config.request_timeout,
        metrics=metrics,
    )
    positions = PositionManager(
        store,
        gap=config.position_gap,
        serialize=config.serialize_positions,
        metrics=metrics,
    )
    planner = HybridQueryPlanner(
        store,
        embedding_provider,
        keyword_index=KeywordIndexAdapter(store, timeout=config.request_timeout),
        vector_index=VectorIndexAdapter(
            store,
            vector_dimension=config.embedding_dimension,
            default_limit=config.vector_search_limit,
            timeout=config.request_timeout,
        ),
        vector_limit=config.vector_search_limit,
        timeout=config.request_timeout,
        metrics=metrics,
    )

    logger.info(
        "Article service configured",
        store_backend=config.store_backend,
        serialize_positions=config.serialize_positions,
    )
    return ArticleService(store, generator, positions, RootResolver(store), planner)
