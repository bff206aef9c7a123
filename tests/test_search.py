"""Tests for keyword, filtered and vector search."""

from datetime import timedelta

import numpy as np
import pytest

from helpcenter.common.errors import GenerationError, SearchError
from helpcenter.models import ArticleOrder, ArticleStatus, SearchParams, utcnow
from helpcenter.search.keyword import KeywordIndexAdapter
from helpcenter.search.planner import HybridQueryPlanner
from helpcenter.search.vector import (
    VectorIndexAdapter,
    cosine_distances,
    rank_by_cosine_distance,
)
from helpcenter.storage.base import ArticleQuery

from .conftest import DIMENSION, FakeEmbeddingProvider, make_article


class CountingStore:
    """Wraps a store and counts vector lookups."""

    def __init__(self, store):
        self._store = store
        self.nearest_calls = 0

    def __getattr__(self, name):
        return getattr(self._store, name)

    async def nearest_article_ids(self, candidate_ids, query_vector, limit):
        self.nearest_calls += 1
        return await self._store.nearest_article_ids(candidate_ids, query_vector, limit)


@pytest.fixture
def planner(store, embedding_provider, metrics):
    return HybridQueryPlanner(
        store,
        embedding_provider,
        vector_index=VectorIndexAdapter(store, vector_dimension=DIMENSION),
        metrics=metrics,
    )


async def add(store, vector=None, **fields):
    article = await store.insert_article(make_article(**fields))
    if vector is not None:
        await store.replace_embedding_terms(article.id, [("term", np.asarray(vector, dtype=np.float32))])
    return article


def test_cosine_distances():
    matrix = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 0.0]])
    distances = cosine_distances(matrix, np.array([1.0, 0.0, 0.0]))
    np.testing.assert_allclose(distances, [0.0, 1.0, 1.0], atol=1e-6)


def test_rank_uses_closest_term_per_article():
    rows = [
        (1, np.array([0.0, 1.0, 0.0])),
        (1, np.array([1.0, 0.1, 0.0])),
        (2, np.array([1.0, 0.5, 0.0])),
        (3, np.array([0.0, 0.0, 1.0])),
    ]
    ranked = rank_by_cosine_distance(rows, np.array([1.0, 0.0, 0.0]), limit=2)
    assert [article_id for article_id, _ in ranked] == [1, 2]
    assert ranked[0][1] <= ranked[1][1]


@pytest.mark.asyncio
async def test_search_without_query_lists_filtered_articles(store, planner):
    billing = await add(store, title="Billing cycle")
    await add(store, title="Reset password", category_id=2)
    await add(store, title="No category", category_id=None)

    results = await planner.search(SearchParams(category_slug="billing"))
    assert [article.id for article in results] == [billing.id]

    everything = await planner.search(SearchParams())
    assert len(everything) == 2


@pytest.mark.asyncio
async def test_search_filters_by_locale_author_and_status(store, planner):
    french = await add(store, category_id=3)
    await add(store, author_id=2)
    draft = await add(store, status=ArticleStatus.DRAFT, author_id=2)

    assert [a.id for a in await planner.search(SearchParams(locale="fr"))] == [french.id]
    assert [a.id for a in await planner.search(SearchParams(author_id=2, status="draft"))] == [draft.id]


@pytest.mark.asyncio
async def test_search_scoped_to_portal(store, planner):
    await add(store, portal_id=1)
    other = await add(store, portal_id=2)

    results = await planner.search(SearchParams(portal_id=2))
    assert [article.id for article in results] == [other.id]


@pytest.mark.asyncio
async def test_default_orders(store, planner):
    low = await add(store, position=30, views=5)
    high = await add(store, position=10, views=50)
    unpositioned = await add(store, views=1)
    store.articles[low.id].updated_at = utcnow() + timedelta(minutes=5)

    by_position = await planner.search(SearchParams(), order=ArticleOrder.POSITION)
    assert [a.id for a in by_position] == [high.id, low.id, unpositioned.id]

    by_views = await planner.search(SearchParams(), order=ArticleOrder.VIEWS)
    assert [a.id for a in by_views] == [high.id, low.id, unpositioned.id]

    by_updated = await planner.search(SearchParams(), order=ArticleOrder.UPDATED_AT)
    assert by_updated[0].id == low.id


@pytest.mark.asyncio
async def test_keyword_search_prefix_matches_last_token(store, planner):
    invoice = await add(store, title="Download an invoice", content="Invoices are in settings.")
    await add(store, title="Reset password", content="Use the forgotten password link.")

    results = await planner.search(SearchParams(query="invo"))
    assert [article.id for article in results] == [invoice.id]

    assert await planner.search(SearchParams(query="invoice passw")) == []


@pytest.mark.asyncio
async def test_keyword_search_applies_filters(store, planner):
    await add(store, title="Invoice basics", category_id=1)
    account = await add(store, title="Invoice address", category_id=2)

    results = await planner.search(SearchParams(query="invoice", category_slug="account"))
    assert [article.id for article in results] == [account.id]


@pytest.mark.asyncio
async def test_keyword_search_ranks_by_relevance(store, planner):
    once = await add(store, title="Billing", content="Nothing else here.")
    twice = await add(store, title="Billing", content="More billing details.")

    results = await planner.search(SearchParams(query="billing"))
    assert [article.id for article in results] == [twice.id, once.id]


@pytest.mark.asyncio
async def test_keyword_adapter_requires_text(store):
    with pytest.raises(ValueError):
        await KeywordIndexAdapter(store).search(ArticleQuery(), "  ")


@pytest.mark.asyncio
async def test_vector_search_returns_nearest_within_filter(store, planner, embedding_provider):
    angles = [0.0, 0.1, 0.2, 0.3, 0.5, 0.8, 1.2]
    billing = [
        await add(store, vector=[np.cos(angle), np.sin(angle), 0.0], category_id=1)
        for angle in angles
    ]
    # Exact match outside the filtered set must not be returned.
    await add(store, vector=[1.0, 0.0, 0.0], category_id=2)

    results = await planner.vector_search(SearchParams(query="billing", category_slug="billing"))

    assert [article.id for article in results] == [article.id for article in billing[:5]]

    query_vector = embedding_provider.vector_for("billing")
    distances = [
        float(cosine_distances(store.embedding_terms[a.id][0].vector, query_vector)[0])
        for a in results
    ]
    assert distances == sorted(distances)


@pytest.mark.asyncio
async def test_vector_search_deduplicates_articles(store, planner):
    article = await add(store, category_id=1)
    await store.replace_embedding_terms(
        article.id,
        [
            ("billing", np.array([1.0, 0.0, 0.0], dtype=np.float32)),
            ("invoice", np.array([0.9, 0.1, 0.0], dtype=np.float32)),
        ],
    )

    results = await planner.vector_search(SearchParams(query="billing"))
    assert [a.id for a in results] == [article.id]


@pytest.mark.asyncio
async def test_vector_search_empty_candidates_skips_lookup(store, embedding_provider):
    counting = CountingStore(store)
    planner = HybridQueryPlanner(counting, embedding_provider)
    await add(store, vector=[1.0, 0.0, 0.0], category_id=1)

    results = await planner.vector_search(SearchParams(query="billing", category_slug="missing"))

    assert results == []
    assert counting.nearest_calls == 0


@pytest.mark.asyncio
async def test_vector_search_without_query_returns_nothing(store, planner, embedding_provider):
    await add(store, vector=[1.0, 0.0, 0.0])
    assert await planner.vector_search(SearchParams()) == []
    assert embedding_provider.batches == []


@pytest.mark.asyncio
async def test_vector_search_dimension_mismatch(store, planner):
    planner.embedding_provider = FakeEmbeddingProvider(vectors={"billing": [1.0, 0.0]})
    await add(store, vector=[1.0, 0.0, 0.0])

    with pytest.raises(SearchError):
        await planner.vector_search(SearchParams(query="billing"))


@pytest.mark.asyncio
async def test_vector_search_embedding_failure(store, planner, embedding_provider):
    embedding_provider.error = GenerationError("provider down")
    with pytest.raises(SearchError):
        await planner.vector_search(SearchParams(query="billing"))


@pytest.mark.asyncio
async def test_search_metrics_recorded(store, planner, metrics):
    await add(store, vector=[1.0, 0.0, 0.0], title="Billing")
    await planner.search(SearchParams())
    await planner.search(SearchParams(query="billing"))
    await planner.vector_search(SearchParams(query="billing"))

    output = metrics.get_metrics()
    for query_type in ("filtered", "keyword", "vector"):
        assert f'helpcenter_search_requests_total{{query_type="{query_type}"}} 1.0' in output


@pytest.mark.asyncio
@pytest.mark.parametrize("blank", ["", "   ", "\t\n"])
async def test_blank_query_falls_back_to_filtered_listing(store, planner, embedding_provider, blank):
    article = await add(store, vector=[1.0, 0.0, 0.0])

    results = await planner.search(SearchParams(query=blank, category_slug="billing"))

    assert [a.id for a in results] == [article.id]
    assert await planner.vector_search(SearchParams(query=blank)) == []
    assert embedding_provider.batches == []
