"""Article store factory.

Centralizes creation of concrete ``ArticleStore`` backends so callers don't
depend on implementation details.
"""

from enum import Enum
from typing import Any

import structlog

from ..common.config import HelpCenterConfig
from .base import ArticleStore
from .memory import InMemoryArticleStore
from .postgres import PgArticleStore

logger = structlog.get_logger("helpcenter.storage.factory")


class StoreBackend(Enum):
    """Supported article store backends."""
    POSTGRES = "postgres"
    MEMORY = "memory"


def create_article_store(backend: str, **kwargs: Any) -> ArticleStore:
    """Create an article store by backend name.

    Parameters
    - backend: ``postgres`` or ``memory``
    - kwargs: Backend-specific options (``dsn`` is required for postgres)
    """
    try:
        store_backend = StoreBackend(backend)
    except ValueError:
        raise ValueError(f"Unsupported article store backend: {backend}")

    if store_backend == StoreBackend.POSTGRES:
        dsn = kwargs.pop("dsn", None)
        if not dsn:
            raise ValueError("PostgreSQL store requires 'dsn'")
        return PgArticleStore(dsn, **kwargs)

    return InMemoryArticleStore(vector_dimension=kwargs.get("vector_dimension"))


def create_article_store_from_config(config: HelpCenterConfig) -> ArticleStore:
    """Create the article store selected by ``HELPCENTER_STORE_BACKEND``."""
    logger.info("Creating article store", backend=config.store_backend)
    if config.store_backend == StoreBackend.POSTGRES.value:
        return create_article_store(
            config.store_backend,
            dsn=config.database_dsn,
            pool_size=config.database_pool_size,
            command_timeout=config.database_command_timeout,
            vector_dimension=config.embedding_dimension,
        )
    return create_article_store(config.store_backend, vector_dimension=config.embedding_dimension)
