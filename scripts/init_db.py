#!/usr/bin/env python3
"""Initialize the article tables with the configured vector dimension."""

import asyncio

import structlog

from helpcenter.common.config import HelpCenterConfig
from helpcenter.common.logging import configure_logging_from_config
from helpcenter.storage.postgres import PgArticleStore

logger = structlog.get_logger("init_db")


async def init_database(config: HelpCenterConfig) -> None:
    """Create the pgvector extension, tables and indexes."""
    store = PgArticleStore(
        config.database_dsn,
        pool_size=1,
        command_timeout=config.database_command_timeout,
        vector_dimension=config.embedding_dimension,
    )
    try:
        await store.create_schema()
        logger.info("Database initialization completed", vector_dimension=config.embedding_dimension)
    finally:
        await store.close()


def main() -> None:
    config = HelpCenterConfig()
    configure_logging_from_config(config, "init_db")
    asyncio.run(init_database(config))


if __name__ == "__main__":
    main()
