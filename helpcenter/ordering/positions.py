"""Gap-sequenced manual ordering of articles.

Positions are integers scoped to (account, category). A new position is the
scope maximum plus a fixed gap (10 by default), or the gap itself in an empty
scope, which leaves room for manual insertions between neighbours. Nothing
rebalances the scope when gaps run out.

Concurrency
- ``serialize=True`` (default): read-max and write run under a per-scope lock.
  ``create_positioned`` holds the lock across the row insert as well, so the
  next create in the scope reads the committed maximum
- ``serialize=False``: plain read-then-write. Two concurrent creates in an
  empty scope can both be handed the same position
"""

import asyncio
import weakref
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import structlog

from ..common.errors import BulkOperationPartialFailure, NotFoundError, StoreError
from ..common.metrics import MetricsCollector
from ..models import Article
from ..storage.base import ArticleStore

logger = structlog.get_logger("helpcenter.ordering.positions")

DEFAULT_POSITION_GAP = 10

Scope = Tuple[Optional[int], Optional[int]]


class PositionManager:
    """Assigns and maintains article positions.

    Parameters
    - store: Article store providing ``max_position``/``update_position``
    - gap: Distance between consecutive assigned positions
    - serialize: Guard scope reads and writes with a per-scope lock
    - metrics: Optional collector
    """

    def __init__(
        self,
        store: ArticleStore,
        gap: int = DEFAULT_POSITION_GAP,
        serialize: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ):
        if gap < 1:
            raise ValueError("Position gap must be positive")
        self.store = store
        self.gap = gap
        self.serialize = serialize
        self.metrics = metrics
        self._locks: "weakref.WeakValueDictionary[Scope, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, scope: Scope) -> asyncio.Lock:
        lock = self._locks.get(scope)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[scope] = lock
        return lock

    async def assign_on_create(self, article: Article) -> Optional[int]:
        """Give a new article a position unless the caller supplied one.

        Returns the assigned position, or ``None`` when left untouched.
        """
        if article.position is not None:
            return None
        return await self._assign(article, reason="create")

    async def create_positioned(
        self,
        article: Article,
        insert: Callable[[Article], Awaitable[Article]],
    ) -> Article:
        """Assign a position to a new article and persist it with ``insert``.

        In serialized mode the scope stays locked until ``insert`` returns.
        """
        if not self.serialize:
            await self.assign_on_create(article)
            return await insert(article)

        async with self._lock_for(article.scope):
            if article.position is None:
                await self._compute_and_set(article, reason="create")
            return await insert(article)

    async def on_category_changed(
        self,
        article: Article,
        previous_category_id: Optional[int],
        just_created: bool = False,
    ) -> Optional[int]:
        """Re-sequence a persisted article into its new category.

        Skipped when the category was set in the same write that created an
        already-positioned article.
        """
        if not article.persisted:
            return None
        if just_created and article.position is not None and previous_category_id is None:
            logger.debug("Category set on create, keeping position", article_id=article.id)
            return None
        return await self._assign(article, reason="category_change")

    async def bulk_reposition(self, positions: Mapping[Any, Any]) -> List[Any]:
        """Apply ``article_id -> position`` pairs one by one.

        Every entry is attempted. Applied entries stay applied when others
        fail; failures are reported together via
        ``BulkOperationPartialFailure`` after the mapping is processed.
        Returns the applied ids when everything succeeded.
        """
        applied: List[Any] = []
        failures: Dict[Any, Exception] = {}

        for article_id, new_position in positions.items():
            try:
                updated = await self.store.update_position(int(article_id), int(new_position), touch=True)
            except (StoreError, TypeError, ValueError) as e:
                failures[article_id] = e
                continue
            if not updated:
                failures[article_id] = NotFoundError(article_id)
                continue
            applied.append(article_id)

        if failures:
            if self.metrics:
                self.metrics.record_bulk_reposition_failures(len(failures))
            logger.warning(
                "Bulk reposition partially failed",
                applied=len(applied),
                failed=[str(key) for key in failures],
            )
            raise BulkOperationPartialFailure(applied, failures)

        logger.info("Bulk reposition applied", count=len(applied))
        return applied

    async def _assign(self, article: Article, reason: str) -> int:
        if not self.serialize:
            return await self._compute_and_set(article, reason)
        async with self._lock_for(article.scope):
            return await self._compute_and_set(article, reason)

    async def _compute_and_set(self, article: Article, reason: str) -> int:
        scope = article.scope
        current = await self.store.max_position(*scope)
        new_position = current + self.gap if current is not None else self.gap

        # Persisted rows get a direct column write that skips the write path.
        if article.persisted:
            if not await self.store.update_position(article.id, new_position):
                raise NotFoundError(article.id)
        article.position = new_position

        if self.metrics:
            self.metrics.record_position_assignment(reason)
        logger.info(
            "Assigned article position",
            article_id=article.id,
            account_id=scope[0],
            category_id=scope[1],
            position=new_position,
            reason=reason,
        )
        return new_position
