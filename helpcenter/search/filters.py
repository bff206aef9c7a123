"""Metadata filters applied before keyword or vector search.

Each filter is a small combinator over ``ArticleQuery``: it appends its
condition when it has a value and is a no-op otherwise (absent means
unconstrained, never exclude-all). The planner composes them in a fixed
order: category slug, category locale, author, status.
"""

from functools import reduce
from typing import Any, Callable, List, Sequence, Tuple

from ..models import ArticleStatus, SearchParams
from ..storage.base import ArticleQuery


class ArticleFilter:
    """Equality filter on one ``ArticleQuery`` field."""

    field_name: str = ""

    def __init__(self, value: Any):
        self.value = value

    @property
    def active(self) -> bool:
        return self.value is not None and self.value != ""

    def normalize(self, value: Any) -> Any:
        return value

    def apply(self, query: ArticleQuery) -> ArticleQuery:
        if not self.active:
            return query
        return query.where(self.field_name, self.normalize(self.value))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"


class CategorySlugFilter(ArticleFilter):
    field_name = "category_slug"


class CategoryLocaleFilter(ArticleFilter):
    field_name = "category_locale"


class AuthorFilter(ArticleFilter):
    field_name = "author_id"


class StatusFilter(ArticleFilter):
    field_name = "status"

    def normalize(self, value: Any) -> ArticleStatus:
        return ArticleStatus.parse(value)


# Order matters: this is the order conditions are appended in.
FILTER_CHAIN: Tuple[Tuple[Callable[[Any], ArticleFilter], Callable[[SearchParams], Any]], ...] = (
    (CategorySlugFilter, lambda params: params.category_slug),
    (CategoryLocaleFilter, lambda params: params.locale),
    (AuthorFilter, lambda params: params.author_id),
    (StatusFilter, lambda params: params.status),
)


def build_filters(params: SearchParams) -> List[ArticleFilter]:
    """Instantiate the filter chain for ``params``."""
    return [filter_class(getter(params)) for filter_class, getter in FILTER_CHAIN]


def apply_filters(filters: Sequence[ArticleFilter], query: ArticleQuery) -> ArticleQuery:
    """Fold ``filters`` over ``query`` left to right."""
    return reduce(lambda current, article_filter: article_filter.apply(current), filters, query)


def filtered_query(params: SearchParams) -> ArticleQuery:
    """The base query for ``params`` with every filter applied."""
    return apply_filters(build_filters(params), ArticleQuery(portal_id=params.portal_id))
