"""In-memory implementation of the article store.

Used by the test-suite and for local development without PostgreSQL. It keeps
the same observable semantics as the PostgreSQL store: copies in and out,
category inner-join for listings, cascade delete of embedding terms and
nullify-on-delete for root references.

Keyword matching is a simple token stand-in for the database full-text
engine: every query token must occur in title/description/content, the last
one as a prefix, and articles are ranked by the number of matching tokens.
Vector lookup is a brute-force cosine scan over the candidate rows.
"""

import itertools
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..common.errors import StoreQueryError
from ..models import Article, ArticleOrder, Category, EmbeddingTerm, utcnow
from ..search.vector import rank_by_cosine_distance
from .base import ArticleQuery, ArticleStore, query_tokens

logger = structlog.get_logger("helpcenter.storage.memory")


class InMemoryArticleStore(ArticleStore):
    """Dictionary-backed article store."""

    def __init__(self, vector_dimension: Optional[int] = None):
        self.vector_dimension = vector_dimension
        self.articles: Dict[int, Article] = {}
        self.categories: Dict[int, Category] = {}
        self.embedding_terms: Dict[int, List[EmbeddingTerm]] = {}
        self._article_ids = itertools.count(1)
        self._category_ids = itertools.count(1)
        self._term_ids = itertools.count(1)

    # Articles

    async def get_article(self, article_id: int) -> Optional[Article]:
        article = self.articles.get(article_id)
        return article.copy() if article else None

    async def get_articles(self, article_ids: Sequence[int]) -> List[Article]:
        return [self.articles[i].copy() for i in article_ids if i in self.articles]

    async def find_portal_article(self, portal_id: Optional[int], article_id: int) -> Optional[Article]:
        article = self.articles.get(article_id)
        if article is None or article.portal_id != portal_id:
            return None
        return article.copy()

    async def insert_article(self, article: Article) -> Article:
        now = utcnow()
        stored = article.copy(
            id=article.id if article.id is not None else next(self._article_ids),
            created_at=article.created_at or now,
            updated_at=now,
        )
        self.articles[stored.id] = stored
        logger.debug("Inserted article", article_id=stored.id)
        return stored.copy()

    async def save_article(self, article: Article) -> Article:
        if article.id not in self.articles:
            raise StoreQueryError(f"Article {article.id} does not exist")
        stored = article.copy(updated_at=utcnow())
        self.articles[stored.id] = stored
        return stored.copy()

    async def delete_article(self, article_id: int) -> bool:
        if self.articles.pop(article_id, None) is None:
            return False
        self.embedding_terms.pop(article_id, None)
        for other in self.articles.values():
            if other.root_article_id == article_id:
                other.root_article_id = None
        logger.debug("Deleted article", article_id=article_id)
        return True

    async def insert_category(self, category: Category) -> Category:
        if category.id is None:
            category.id = next(self._category_ids)
        self.categories[category.id] = category
        return category

    # Ordering

    async def max_position(self, account_id: Optional[int], category_id: Optional[int]) -> Optional[int]:
        positions = [
            article.position
            for article in self.articles.values()
            if article.account_id == account_id
            and article.category_id == category_id
            and article.position is not None
        ]
        return max(positions) if positions else None

    async def update_position(self, article_id: int, position: int, touch: bool = False) -> bool:
        article = self.articles.get(article_id)
        if article is None:
            return False
        article.position = position
        if touch:
            article.updated_at = utcnow()
        return True

    async def update_root_article(self, article_id: int, root_article_id: Optional[int]) -> bool:
        article = self.articles.get(article_id)
        if article is None:
            return False
        article.root_article_id = root_article_id
        article.updated_at = utcnow()
        return True

    async def repoint_associated_articles(self, from_root_id: int, to_root_id: int) -> int:
        moved = 0
        for article in self.articles.values():
            if article.root_article_id == from_root_id:
                article.root_article_id = to_root_id
                article.updated_at = utcnow()
                moved += 1
        return moved

    # Filtering and keyword index

    def _matches(self, article: Article, query: ArticleQuery) -> bool:
        category = self.categories.get(article.category_id) if article.category_id is not None else None
        if category is None:
            return False
        if query.portal_id is not None and article.portal_id != query.portal_id:
            return False

        getters: Dict[str, Callable[[], Any]] = {
            "category_slug": lambda: category.slug,
            "category_locale": lambda: category.locale,
            "author_id": lambda: article.author_id,
            "status": lambda: article.status,
        }
        return all(getters[name]() == value for name, value in query.conditions)

    def _select(self, query: ArticleQuery) -> List[Article]:
        return [a for a in self.articles.values() if self._matches(a, query)]

    async def filter_articles(
        self,
        query: ArticleQuery,
        order: Optional[ArticleOrder] = None
    ) -> List[Article]:
        articles = self._select(query)
        if order == ArticleOrder.UPDATED_AT:
            articles.sort(key=lambda a: a.updated_at or utcnow(), reverse=True)
        elif order == ArticleOrder.POSITION:
            articles.sort(key=lambda a: (a.position is None, a.position or 0))
        elif order == ArticleOrder.VIEWS:
            articles.sort(key=lambda a: a.views or 0, reverse=True)
        return [a.copy() for a in articles]

    async def filter_article_ids(self, query: ArticleQuery) -> List[int]:
        return [a.id for a in self._select(query)]

    async def keyword_search(self, query: ArticleQuery, text: str) -> List[Article]:
        tokens = query_tokens(text)
        if not tokens:
            return []
        *exact, prefix = tokens

        scored: List[Tuple[int, Article]] = []
        for article in self._select(query):
            words = query_tokens(
                " ".join(part or "" for part in (article.title, article.description, article.content))
            )
            if not all(token in words for token in exact):
                continue
            prefix_hits = sum(1 for word in words if word.startswith(prefix))
            if not prefix_hits:
                continue
            score = prefix_hits + sum(words.count(token) for token in exact)
            scored.append((score, article))

        scored.sort(key=lambda item: (-item[0], item[1].id))
        return [article.copy() for _, article in scored]

    # Embedding terms and vector index

    async def replace_embedding_terms(
        self,
        article_id: int,
        terms: Sequence[Tuple[str, np.ndarray]]
    ) -> int:
        rows = [
            EmbeddingTerm(
                id=next(self._term_ids),
                article_id=article_id,
                term=term,
                vector=self._ensure_vector_dimension(vector),
            )
            for term, vector in terms
        ]
        self.embedding_terms[article_id] = rows
        return len(rows)

    async def list_embedding_terms(self, article_id: int) -> List[EmbeddingTerm]:
        return list(self.embedding_terms.get(article_id, []))

    async def nearest_article_ids(
        self,
        candidate_ids: Sequence[int],
        query_vector: np.ndarray,
        limit: int
    ) -> List[Tuple[int, float]]:
        rows = [
            (term.article_id, term.vector)
            for article_id in dict.fromkeys(candidate_ids)
            for term in self.embedding_terms.get(article_id, [])
        ]
        return rank_by_cosine_distance(rows, query_vector, limit)

    async def health_check(self) -> bool:
        return True

    def _ensure_vector_dimension(self, vector: Any) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1:
            raise StoreQueryError("Vector must be one-dimensional")
        if self.vector_dimension is not None and array.shape[0] != self.vector_dimension:
            raise StoreQueryError(
                f"Expected vector dimension {self.vector_dimension}, "
                f"got {array.shape[0]}"
            )
        return array
