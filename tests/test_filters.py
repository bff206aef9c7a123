"""Tests for the metadata filter chain."""

import pytest

from helpcenter.models import ArticleStatus, SearchParams
from helpcenter.search.filters import (
    AuthorFilter,
    CategoryLocaleFilter,
    CategorySlugFilter,
    StatusFilter,
    apply_filters,
    build_filters,
    filtered_query,
)
from helpcenter.storage.base import ArticleQuery


def test_filter_chain_order():
    params = SearchParams(category_slug="billing", locale="en", author_id=4, status=ArticleStatus.PUBLISHED)
    filters = build_filters(params)

    assert [type(f) for f in filters] == [CategorySlugFilter, CategoryLocaleFilter, AuthorFilter, StatusFilter]
    assert filtered_query(params).conditions == (
        ("category_slug", "billing"),
        ("category_locale", "en"),
        ("author_id", 4),
        ("status", ArticleStatus.PUBLISHED),
    )


@pytest.mark.parametrize("value", [None, ""])
def test_absent_filter_is_noop(value):
    query = ArticleQuery(portal_id=1)
    assert CategorySlugFilter(value).apply(query) is query
    assert AuthorFilter(value).apply(query) is query


def test_only_present_filters_are_applied():
    query = filtered_query(SearchParams(locale="fr", portal_id=3))
    assert query.portal_id == 3
    assert query.conditions == (("category_locale", "fr"),)


@pytest.mark.parametrize("raw", [1, "1", "published", ArticleStatus.PUBLISHED])
def test_status_filter_normalizes(raw):
    query = StatusFilter(raw).apply(ArticleQuery())
    assert query.conditions == (("status", ArticleStatus.PUBLISHED),)


def test_status_filter_rejects_unknown_name():
    with pytest.raises(ValueError):
        StatusFilter("deleted").apply(ArticleQuery())


def test_apply_filters_does_not_mutate_base_query():
    base = ArticleQuery()
    result = apply_filters([CategorySlugFilter("billing")], base)
    assert base.conditions == ()
    assert result.conditions == (("category_slug", "billing"),)


def test_query_rejects_unknown_field():
    with pytest.raises(ValueError):
        ArticleQuery().where("title", "x")


def test_search_params_from_dict():
    params = SearchParams.from_dict({"query": "refund", "status": "draft", "category_slug": ""})
    assert params.query == "refund"
    assert params.status is ArticleStatus.DRAFT
    assert filtered_query(params).conditions == (("status", ArticleStatus.DRAFT),)
