"""Shared fixtures: in-memory store, fake model providers, wired service."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import pytest
from prometheus_client import CollectorRegistry

from helpcenter.clients.base import EmbeddingProvider, StructuredCompletionClient
from helpcenter.common.config import HelpCenterConfig
from helpcenter.common.metrics import MetricsCollector
from helpcenter.models import Article, ArticleStatus, Category
from helpcenter.service import create_article_service
from helpcenter.storage.memory import InMemoryArticleStore

DIMENSION = 3

VOCABULARY = {
    "billing": [1.0, 0.0, 0.0],
    "invoice": [0.9, 0.1, 0.0],
    "password": [0.0, 1.0, 0.0],
    "login": [0.1, 0.9, 0.0],
    "shipping": [0.0, 0.0, 1.0],
}


class FakeCompletionClient(StructuredCompletionClient):
    """Returns a canned JSON payload (or raises) and records the messages."""

    def __init__(self, payload: Union[Dict[str, Any], Callable[[List[Dict[str, str]]], Any], None] = None):
        self.payload = payload if payload is not None else {"search_terms": ["billing", "invoice"]}
        self.calls: List[List[Dict[str, str]]] = []
        self.delay = 0.0

    async def complete_json(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.payload, Exception):
            raise self.payload
        if callable(self.payload):
            return self.payload(messages)
        return self.payload


class FakeEmbeddingProvider(EmbeddingProvider):
    """Embeds text as the sum of known vocabulary vectors."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, delay: float = 0.0):
        self.vectors = vectors or VOCABULARY
        self.delay = delay
        self.batches: List[List[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.error: Optional[Exception] = None

    def vector_for(self, text: str) -> np.ndarray:
        if text in self.vectors:
            return np.asarray(self.vectors[text], dtype=np.float32)
        total = np.zeros(DIMENSION, dtype=np.float32)
        for word in text.lower().split():
            if word in self.vectors:
                total += np.asarray(self.vectors[word], dtype=np.float32)
        return total if total.any() else np.full(DIMENSION, 0.01, dtype=np.float32)

    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        self.batches.append(list(texts))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error:
                raise self.error
            return [self.vector_for(text) for text in texts]
        finally:
            self.in_flight -= 1


def make_article(**overrides: Any) -> Article:
    fields: Dict[str, Any] = {
        "title": "Updating billing details",
        "content": "How to change the card used for billing.",
        "author_id": 1,
        "account_id": 1,
        "portal_id": 1,
        "category_id": 1,
        "status": ArticleStatus.PUBLISHED,
    }
    fields.update(overrides)
    return Article(**fields)


@pytest.fixture
def store() -> InMemoryArticleStore:
    store = InMemoryArticleStore(vector_dimension=DIMENSION)
    store.categories[1] = Category(id=1, slug="billing", locale="en", account_id=1, portal_id=1)
    store.categories[2] = Category(id=2, slug="account", locale="en", account_id=1, portal_id=1)
    store.categories[3] = Category(id=3, slug="facturation", locale="fr", account_id=1, portal_id=1)
    return store


@pytest.fixture
def completion_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector("test-helpcenter", registry=CollectorRegistry())


@pytest.fixture
def config() -> HelpCenterConfig:
    return HelpCenterConfig(
        store_backend="memory",
        embedding_dimension=DIMENSION,
        openai_api_key="test-key",
        embedding_batch_size=2,
        embedding_concurrency=2,
        request_timeout=5.0,
    )


@pytest.fixture
def service(config, store, completion_client, embedding_provider, metrics):
    return create_article_service(
        config,
        store=store,
        completion_client=completion_client,
        embedding_provider=embedding_provider,
        metrics=metrics,
    )
