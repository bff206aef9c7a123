"""Root resolution for associated/duplicate articles.

An article's ``root_article_id`` always names an article without a root of
its own. The only write site is ``associate_root``, which flattens the
candidate's chain before writing and moves the article's own associates to
the new root, so chains never exceed one hop.
"""

from typing import Any, Optional

import structlog

from ..models import Article
from ..storage.base import ArticleStore

logger = structlog.get_logger("helpcenter.ordering.roots")


def find_root_article_id(article: Article) -> Optional[int]:
    """The canonical root of ``article``'s group: its root, else itself."""
    return article.root_article_id or article.id


class RootResolver:
    """Associates articles with the root of a duplicate group."""

    def __init__(self, store: ArticleStore):
        self.store = store

    async def associate_root(self, article: Article, candidate_id: Any) -> Optional[int]:
        """Point ``article`` at the root of ``candidate_id``'s group.

        Silently does nothing when the candidate is absent or not in the
        article's portal. Returns the root id that was written, if any.
        """
        if candidate_id is None or candidate_id == "":
            return None

        try:
            lookup_id = int(candidate_id)
        except (TypeError, ValueError):
            candidate = None
        else:
            candidate = await self.store.find_portal_article(article.portal_id, lookup_id)
        if candidate is None:
            logger.debug(
                "Root candidate not found, skipping",
                article_id=article.id,
                candidate_id=candidate_id,
                portal_id=article.portal_id,
            )
            return None

        root_id = find_root_article_id(candidate)
        if root_id is None or root_id == article.id:
            return None

        if article.persisted:
            await self.store.update_root_article(article.id, root_id)
            # Articles that used this one as their root follow it to the new root.
            moved = await self.store.repoint_associated_articles(article.id, root_id)
            if moved:
                logger.info("Repointed associated articles", from_root=article.id, to_root=root_id, count=moved)
        article.root_article_id = root_id

        logger.info("Associated article with root", article_id=article.id, root_article_id=root_id)
        return root_id
