"""Domain types shared by the engine components.

Rows are plain dataclasses; the storage backends map them to and from their
own representation. ``ArticleStatus`` values match the integers persisted in
the ``articles.status`` column.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

INDEXED_TEXT_FIELDS = ("title", "description", "content")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArticleStatus(Enum):
    """Publication status of an article."""
    DRAFT = 0
    PUBLISHED = 1
    ARCHIVED = 2

    @classmethod
    def parse(cls, value: Any) -> "ArticleStatus":
        """Accept an enum member, its integer value or its lowercase name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and not value.isdigit():
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown article status: {value}")
        return cls(int(value))


class ArticleOrder(Enum):
    """Default orderings for unranked article listings."""
    UPDATED_AT = "updated_at"
    POSITION = "position"
    VIEWS = "views"


@dataclass
class Category:
    id: int
    slug: str
    locale: str = "en"
    account_id: Optional[int] = None
    portal_id: Optional[int] = None


@dataclass
class Article:
    """A help-center article.

    ``root_article_id`` points at the canonical article of a duplicate group
    and is kept at depth 1. ``position`` only has meaning inside the
    (account_id, category_id) scope.
    """
    title: str
    content: str
    author_id: Optional[int]
    account_id: Optional[int]
    portal_id: Optional[int] = None
    id: Optional[int] = None
    description: Optional[str] = None
    status: ArticleStatus = ArticleStatus.DRAFT
    position: Optional[int] = None
    category_id: Optional[int] = None
    root_article_id: Optional[int] = None
    views: int = 0
    slug: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def persisted(self) -> bool:
        return self.id is not None

    @property
    def scope(self) -> Tuple[Optional[int], Optional[int]]:
        """The (account, category) pair positions are sequenced in."""
        return (self.account_id, self.category_id)

    def copy(self, **changes: Any) -> "Article":
        changes.setdefault("meta", dict(self.meta))
        return replace(self, **changes)


@dataclass
class EmbeddingTerm:
    """A search term extracted from an article and its vector."""
    article_id: int
    term: str
    vector: np.ndarray
    id: Optional[int] = None


@dataclass
class SearchParams:
    """Query parameters accepted by the planner.

    Absent (``None`` or empty) filter values leave the result unconstrained.
    """
    query: Optional[str] = None
    category_slug: Optional[str] = None
    locale: Optional[str] = None
    author_id: Optional[int] = None
    status: Optional[ArticleStatus] = None
    portal_id: Optional[int] = None

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "SearchParams":
        status = params.get("status")
        return cls(
            query=params.get("query"),
            category_slug=params.get("category_slug"),
            locale=params.get("locale"),
            author_id=params.get("author_id"),
            status=ArticleStatus.parse(status) if status not in (None, "") else None,
            portal_id=params.get("portal_id"),
        )
