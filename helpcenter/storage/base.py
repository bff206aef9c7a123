"""Storage collaborator contract.

Defines the abstract interface the engine depends on, independent of the
backing implementation (PostgreSQL/pgvector, in-memory).

The store owns the article rows, the keyword index over title/description/
content and the vector index over embedding-term rows. It must cascade-delete
an article's embedding terms and nullify ``root_article_id`` on articles that
pointed at a deleted article.

All methods are asynchronous.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from ..models import Article, ArticleOrder, Category, EmbeddingTerm

# Conditions an ``ArticleQuery`` can carry, keyed by the name backends map to
# their own columns or attributes.
FILTERABLE_FIELDS = ("category_slug", "category_locale", "author_id", "status")

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def query_tokens(text: str) -> List[str]:
    """Split free text into lowercase word tokens."""
    return _TOKEN_RE.findall(text.lower())


@dataclass(frozen=True)
class ArticleQuery:
    """Immutable description of a filtered article set.

    Listings built from a query only include articles that have a category;
    ``portal_id`` (when set) restricts them to one portal.
    """
    portal_id: Optional[int] = None
    conditions: Tuple[Tuple[str, Any], ...] = ()

    def where(self, field_name: str, value: Any) -> "ArticleQuery":
        """Return a new query with an equality condition appended."""
        if field_name not in FILTERABLE_FIELDS:
            raise ValueError(f"Unsupported filter field: {field_name}")
        return replace(self, conditions=self.conditions + ((field_name, value),))


class ArticleStore(ABC):
    """Abstract base class for article stores."""

    # Articles

    @abstractmethod
    async def get_article(self, article_id: int) -> Optional[Article]:
        """Return the article or ``None``."""
        pass

    @abstractmethod
    async def get_articles(self, article_ids: Sequence[int]) -> List[Article]:
        """Return the existing articles among ``article_ids`` (any order)."""
        pass

    @abstractmethod
    async def find_portal_article(self, portal_id: Optional[int], article_id: int) -> Optional[Article]:
        """Return the article only if it belongs to ``portal_id``."""
        pass

    @abstractmethod
    async def insert_article(self, article: Article) -> Article:
        """Persist a new article and return it with ``id`` and timestamps set."""
        pass

    @abstractmethod
    async def save_article(self, article: Article) -> Article:
        """Write every field of an existing article."""
        pass

    @abstractmethod
    async def delete_article(self, article_id: int) -> bool:
        """Delete an article, its embedding terms, and detach its associates."""
        pass

    @abstractmethod
    async def insert_category(self, category: Category) -> Category:
        pass

    # Ordering

    @abstractmethod
    async def max_position(self, account_id: Optional[int], category_id: Optional[int]) -> Optional[int]:
        """Highest position in the (account, category) scope, ``None`` if empty."""
        pass

    @abstractmethod
    async def update_position(self, article_id: int, position: int, touch: bool = False) -> bool:
        """Write the position column directly.

        Returns ``False`` when the article does not exist. ``touch`` also
        bumps ``updated_at``.
        """
        pass

    @abstractmethod
    async def update_root_article(self, article_id: int, root_article_id: Optional[int]) -> bool:
        pass

    @abstractmethod
    async def repoint_associated_articles(self, from_root_id: int, to_root_id: int) -> int:
        """Move every article rooted at ``from_root_id`` to ``to_root_id``.

        Returns the number of articles updated.
        """
        pass

    # Filtering and keyword index

    @abstractmethod
    async def filter_articles(
        self,
        query: ArticleQuery,
        order: Optional[ArticleOrder] = None
    ) -> List[Article]:
        pass

    @abstractmethod
    async def filter_article_ids(self, query: ArticleQuery) -> List[int]:
        pass

    @abstractmethod
    async def keyword_search(self, query: ArticleQuery, text: str) -> List[Article]:
        """Relevance-ranked full-text search over title, description, content.

        The last token of ``text`` is prefix-matched.
        """
        pass

    # Embedding terms and vector index

    @abstractmethod
    async def replace_embedding_terms(
        self,
        article_id: int,
        terms: Sequence[Tuple[str, np.ndarray]]
    ) -> int:
        """Delete all terms of the article and insert ``terms`` atomically.

        Returns the number of rows inserted.
        """
        pass

    @abstractmethod
    async def list_embedding_terms(self, article_id: int) -> List[EmbeddingTerm]:
        pass

    @abstractmethod
    async def nearest_article_ids(
        self,
        candidate_ids: Sequence[int],
        query_vector: np.ndarray,
        limit: int
    ) -> List[Tuple[int, float]]:
        """Closest articles by cosine distance among ``candidate_ids`` only.

        Returns ``(article_id, distance)`` pairs, one per article (its closest
        term), sorted by ascending distance.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass
