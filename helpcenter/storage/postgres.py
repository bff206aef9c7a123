"""PostgreSQL implementation of the article store.

Articles, categories and embedding terms live in PostgreSQL. Keyword search
uses ``tsvector``/``ts_rank`` with a prefix match on the last query token;
vector search uses the pgvector ``<=>`` cosine-distance operator restricted
to the candidate article ids before ordering.

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

import json
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import asyncpg
import numpy as np
import structlog
from asyncpg import Connection, Pool
from pgvector.asyncpg import register_vector

from ..common.errors import StoreConnectionError, StoreQueryError
from ..models import Article, ArticleOrder, ArticleStatus, Category, EmbeddingTerm
from .base import ArticleQuery, ArticleStore, query_tokens

logger = structlog.get_logger("helpcenter.storage.postgres")

ARTICLE_COLUMNS = """
    a.id, a.title, a.description, a.content, a.status, a.position,
    a.category_id, a.author_id, a.account_id, a.portal_id,
    a.root_article_id, a.views, a.slug, a.meta, a.created_at, a.updated_at
"""

DOCUMENT_VECTOR = (
    "to_tsvector('simple', coalesce(a.title, '') || ' ' || "
    "coalesce(a.description, '') || ' ' || coalesce(a.content, ''))"
)

FILTER_COLUMNS = {
    "category_slug": "c.slug",
    "category_locale": "c.locale",
    "author_id": "a.author_id",
    "status": "a.status",
}

ORDER_CLAUSES = {
    ArticleOrder.UPDATED_AT: "a.updated_at DESC",
    ArticleOrder.POSITION: "a.position ASC NULLS LAST",
    ArticleOrder.VIEWS: "a.views DESC NULLS LAST",
}


def schema_statements(vector_dimension: int) -> List[str]:
    """DDL for the tables and indexes this store expects."""
    return [
        "CREATE EXTENSION IF NOT EXISTS vector;",
        """
        CREATE TABLE IF NOT EXISTS categories (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(255) NOT NULL,
            locale VARCHAR(16) DEFAULT 'en',
            account_id BIGINT,
            portal_id BIGINT
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS articles (
            id BIGSERIAL PRIMARY KEY,
            title VARCHAR(255),
            description TEXT,
            content TEXT,
            status INTEGER NOT NULL DEFAULT 0,
            position INTEGER,
            category_id BIGINT REFERENCES categories(id),
            author_id BIGINT NOT NULL,
            account_id BIGINT NOT NULL,
            portal_id BIGINT,
            root_article_id BIGINT REFERENCES articles(id) ON DELETE SET NULL,
            views INTEGER NOT NULL DEFAULT 0,
            slug VARCHAR(255) UNIQUE,
            meta JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        );
        """,
        f"""
        CREATE TABLE IF NOT EXISTS article_embeddings (
            id BIGSERIAL PRIMARY KEY,
            article_id BIGINT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
            term TEXT NOT NULL,
            embedding vector({vector_dimension}) NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        );
        """,
        "CREATE INDEX IF NOT EXISTS idx_articles_scope ON articles(account_id, category_id, position);",
        "CREATE INDEX IF NOT EXISTS idx_articles_root ON articles(root_article_id);",
        "CREATE INDEX IF NOT EXISTS idx_articles_author ON articles(author_id);",
        f"CREATE INDEX IF NOT EXISTS idx_articles_text ON articles USING gin({DOCUMENT_VECTOR.replace('a.', '')});",
        "CREATE INDEX IF NOT EXISTS idx_article_embeddings_article ON article_embeddings(article_id);",
        "CREATE INDEX IF NOT EXISTS idx_article_embeddings_vector ON article_embeddings USING hnsw (embedding vector_cosine_ops);",
    ]


def build_prefix_tsquery(text: str) -> Optional[str]:
    """Build a ``to_tsquery`` expression ANDing the tokens of ``text``.

    The last token gets the ``:*`` prefix operator. Tokens are plain word
    characters so they never carry tsquery operators.
    """
    tokens = query_tokens(text)
    if not tokens:
        return None
    tokens[-1] = f"{tokens[-1]}:*"
    return " & ".join(tokens)


class PgArticleStore(ArticleStore):
    """PostgreSQL/pgvector implementation of the article store."""

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        command_timeout: int = 60,
        vector_dimension: Optional[int] = None,
    ):
        """Configure a PostgreSQL-backed article store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        - vector_dimension: Expected dimensionality for stored vectors
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self.vector_dimension = vector_dimension
        self._pool: Optional[Pool] = None

    async def _init_connection(self, conn: Connection) -> None:
        """Register the pgvector and JSONB codecs for a new connection."""
        await register_vector(conn)
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )

    async def _get_pool(self) -> Pool:
        """Get or create the connection pool."""
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=self.command_timeout,
                    init=self._init_connection,
                )
                logger.info("Created PostgreSQL connection pool", pool_size=self.pool_size)
            except Exception as e:
                logger.error("Failed to create PostgreSQL connection pool", error=str(e))
                raise StoreConnectionError(f"Failed to create connection pool: {e}") from e

        return self._pool

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_one: bool = False,
        fetch_val: bool = False
    ) -> Any:
        """Execute a query with error handling.

        All failures are wrapped in ``StoreQueryError`` for consistency.
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_val:
                    return await conn.fetchval(query, *args)
                if fetch_one:
                    return await conn.fetchrow(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except Exception as e:
            logger.error("Query execution failed", query=query, error=str(e))
            raise StoreQueryError(f"Query failed: {e}") from e

    async def create_schema(self) -> None:
        """Create the tables and indexes if they do not exist."""
        for statement in schema_statements(self.vector_dimension or 1536):
            await self._execute_query(statement)
        logger.info("Article schema ensured", vector_dimension=self.vector_dimension)

    # Articles

    async def get_article(self, article_id: int) -> Optional[Article]:
        row = await self._execute_query(
            f"SELECT {ARTICLE_COLUMNS} FROM articles a WHERE a.id = $1",
            article_id,
            fetch_one=True
        )
        return _row_to_article(row) if row else None

    async def get_articles(self, article_ids: Sequence[int]) -> List[Article]:
        if not article_ids:
            return []
        rows = await self._execute_query(
            f"SELECT {ARTICLE_COLUMNS} FROM articles a WHERE a.id = ANY($1::bigint[])",
            list(article_ids),
            fetch=True
        )
        return [_row_to_article(row) for row in rows]

    async def find_portal_article(self, portal_id: Optional[int], article_id: int) -> Optional[Article]:
        row = await self._execute_query(
            f"""
            SELECT {ARTICLE_COLUMNS} FROM articles a
            WHERE a.id = $1 AND a.portal_id IS NOT DISTINCT FROM $2
            """,
            article_id,
            portal_id,
            fetch_one=True
        )
        return _row_to_article(row) if row else None

    async def insert_article(self, article: Article) -> Article:
        row = await self._execute_query(
            f"""
            WITH inserted AS (
                INSERT INTO articles (
                    title, description, content, status, position, category_id,
                    author_id, account_id, portal_id, root_article_id, views, slug, meta
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                RETURNING *
            )
            SELECT {ARTICLE_COLUMNS} FROM inserted a
            """,
            *_article_values(article),
            fetch_one=True
        )
        logger.info("Inserted article", article_id=row["id"], account_id=article.account_id)
        return _row_to_article(row)

    async def save_article(self, article: Article) -> Article:
        row = await self._execute_query(
            f"""
            WITH updated AS (
                UPDATE articles SET
                    title = $1, description = $2, content = $3, status = $4,
                    position = $5, category_id = $6, author_id = $7, account_id = $8,
                    portal_id = $9, root_article_id = $10, views = $11, slug = $12,
                    meta = $13, updated_at = CURRENT_TIMESTAMP
                WHERE id = $14
                RETURNING *
            )
            SELECT {ARTICLE_COLUMNS} FROM updated a
            """,
            *_article_values(article),
            article.id,
            fetch_one=True
        )
        if row is None:
            raise StoreQueryError(f"Article {article.id} does not exist")
        return _row_to_article(row)

    async def delete_article(self, article_id: int) -> bool:
        # Embedding terms cascade and root references are nulled by the FKs.
        result = await self._execute_query("DELETE FROM articles WHERE id = $1", article_id)
        deleted = result.split()[-1] != "0"
        if deleted:
            logger.info("Deleted article", article_id=article_id)
        return deleted

    async def insert_category(self, category: Category) -> Category:
        category_id = await self._execute_query(
            """
            INSERT INTO categories (slug, locale, account_id, portal_id)
            VALUES ($1, $2, $3, $4)
            RETURNING id
            """,
            category.slug,
            category.locale,
            category.account_id,
            category.portal_id,
            fetch_val=True
        )
        category.id = category_id
        return category

    # Ordering

    async def max_position(self, account_id: Optional[int], category_id: Optional[int]) -> Optional[int]:
        return await self._execute_query(
            """
            SELECT MAX(position) FROM articles
            WHERE account_id = $1 AND category_id IS NOT DISTINCT FROM $2
            """,
            account_id,
            category_id,
            fetch_val=True
        )

    async def update_position(self, article_id: int, position: int, touch: bool = False) -> bool:
        if touch:
            query = "UPDATE articles SET position = $2, updated_at = CURRENT_TIMESTAMP WHERE id = $1"
        else:
            query = "UPDATE articles SET position = $2 WHERE id = $1"
        result = await self._execute_query(query, article_id, position)
        return result.split()[-1] != "0"

    async def update_root_article(self, article_id: int, root_article_id: Optional[int]) -> bool:
        result = await self._execute_query(
            """
            UPDATE articles SET root_article_id = $2, updated_at = CURRENT_TIMESTAMP
            WHERE id = $1
            """,
            article_id,
            root_article_id
        )
        return result.split()[-1] != "0"

    async def repoint_associated_articles(self, from_root_id: int, to_root_id: int) -> int:
        result = await self._execute_query(
            """
            UPDATE articles SET root_article_id = $2, updated_at = CURRENT_TIMESTAMP
            WHERE root_article_id = $1
            """,
            from_root_id,
            to_root_id
        )
        return int(result.split()[-1])

    # Filtering and keyword index

    def _build_where(self, query: ArticleQuery, args: List[Any]) -> str:
        """Render the WHERE clause of ``query``, appending its parameters."""
        clauses = ["TRUE"]
        if query.portal_id is not None:
            args.append(query.portal_id)
            clauses.append(f"a.portal_id = ${len(args)}")
        for name, value in query.conditions:
            if isinstance(value, ArticleStatus):
                value = value.value
            args.append(value)
            clauses.append(f"{FILTER_COLUMNS[name]} = ${len(args)}")
        return " AND ".join(clauses)

    async def filter_articles(
        self,
        query: ArticleQuery,
        order: Optional[ArticleOrder] = None
    ) -> List[Article]:
        args: List[Any] = []
        sql = f"""
            SELECT {ARTICLE_COLUMNS} FROM articles a
            JOIN categories c ON c.id = a.category_id
            WHERE {self._build_where(query, args)}
        """
        if order is not None:
            sql += f" ORDER BY {ORDER_CLAUSES[order]}"
        rows = await self._execute_query(sql, *args, fetch=True)
        return [_row_to_article(row) for row in rows]

    async def filter_article_ids(self, query: ArticleQuery) -> List[int]:
        args: List[Any] = []
        rows = await self._execute_query(
            f"""
            SELECT a.id FROM articles a
            JOIN categories c ON c.id = a.category_id
            WHERE {self._build_where(query, args)}
            """,
            *args,
            fetch=True
        )
        return [row["id"] for row in rows]

    async def keyword_search(self, query: ArticleQuery, text: str) -> List[Article]:
        tsquery = build_prefix_tsquery(text)
        if tsquery is None:
            return []

        args: List[Any] = [tsquery]
        where = self._build_where(query, args)
        rows = await self._execute_query(
            f"""
            SELECT {ARTICLE_COLUMNS},
                   ts_rank({DOCUMENT_VECTOR}, to_tsquery('simple', $1)) AS rank
            FROM articles a
            JOIN categories c ON c.id = a.category_id
            WHERE {where} AND {DOCUMENT_VECTOR} @@ to_tsquery('simple', $1)
            ORDER BY rank DESC
            """,
            *args,
            fetch=True
        )
        logger.debug("Keyword query executed", tsquery=tsquery, results_count=len(rows))
        return [_row_to_article(row) for row in rows]

    # Embedding terms and vector index

    async def replace_embedding_terms(
        self,
        article_id: int,
        terms: Sequence[Tuple[str, np.ndarray]]
    ) -> int:
        rows = [(article_id, term, self._ensure_vector_dimension(vector)) for term, vector in terms]
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "DELETE FROM article_embeddings WHERE article_id = $1",
                        article_id
                    )
                    if rows:
                        await conn.executemany(
                            """
                            INSERT INTO article_embeddings (article_id, term, embedding)
                            VALUES ($1, $2, $3)
                            """,
                            rows
                        )
        except Exception as e:
            logger.error("Failed to replace embedding terms", article_id=article_id, error=str(e))
            raise StoreQueryError(f"Failed to replace embedding terms: {e}") from e

        logger.info("Replaced embedding terms", article_id=article_id, count=len(rows))
        return len(rows)

    async def list_embedding_terms(self, article_id: int) -> List[EmbeddingTerm]:
        rows = await self._execute_query(
            """
            SELECT id, article_id, term, embedding FROM article_embeddings
            WHERE article_id = $1 ORDER BY id
            """,
            article_id,
            fetch=True
        )
        return [
            EmbeddingTerm(
                id=row["id"],
                article_id=row["article_id"],
                term=row["term"],
                vector=np.asarray(row["embedding"], dtype=np.float32),
            )
            for row in rows
        ]

    async def nearest_article_ids(
        self,
        candidate_ids: Sequence[int],
        query_vector: np.ndarray,
        limit: int
    ) -> List[Tuple[int, float]]:
        if not candidate_ids:
            return []

        vector = self._ensure_vector_dimension(query_vector)
        rows = await self._execute_query(
            """
            SELECT article_id, MIN(embedding <=> $1) AS distance
            FROM article_embeddings
            WHERE article_id = ANY($2::bigint[])
            GROUP BY article_id
            ORDER BY distance ASC, article_id ASC
            LIMIT $3
            """,
            vector,
            list(candidate_ids),
            limit,
            fetch=True
        )
        return [(row["article_id"], float(row["distance"])) for row in rows]

    async def health_check(self) -> bool:
        """Check if the database is reachable."""
        try:
            await self._execute_query("SELECT 1", fetch_val=True)
            return True
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed PostgreSQL connection pool")

    def _ensure_vector_dimension(self, vector: Iterable[float]) -> np.ndarray:
        """Ensure a vector matches the expected dimensionality."""
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1:
            raise StoreQueryError("Vector must be one-dimensional")

        if self.vector_dimension is not None and array.shape[0] != self.vector_dimension:
            raise StoreQueryError(
                f"Expected vector dimension {self.vector_dimension}, "
                f"got {array.shape[0]}"
            )
        return array


def _article_values(article: Article) -> Tuple[Any, ...]:
    return (
        article.title,
        article.description,
        article.content,
        article.status.value,
        article.position,
        article.category_id,
        article.author_id,
        article.account_id,
        article.portal_id,
        article.root_article_id,
        article.views or 0,
        article.slug,
        article.meta or {},
    )


def _row_to_article(row: Any) -> Article:
    return Article(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        content=row["content"],
        status=ArticleStatus(row["status"]),
        position=row["position"],
        category_id=row["category_id"],
        author_id=row["author_id"],
        account_id=row["account_id"],
        portal_id=row["portal_id"],
        root_article_id=row["root_article_id"],
        views=row["views"] or 0,
        slug=row["slug"],
        meta=row["meta"] or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_pg_article_store(dsn: str, **kwargs: Any) -> PgArticleStore:
    """Create a PostgreSQL article store instance."""
    return PgArticleStore(dsn, **kwargs)
