"""Exception hierarchy for the help-center engine."""

from typing import Any, Dict, List, Optional


class HelpCenterError(Exception):
    """Base exception for engine operations."""
    pass


class ValidationError(HelpCenterError):
    """An article is missing required fields."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class NotFoundError(HelpCenterError):
    """An article referenced by id does not exist."""

    def __init__(self, article_id: Any):
        super().__init__(f"Article {article_id} not found")
        self.article_id = article_id


class GenerationError(HelpCenterError):
    """Search-term extraction or embedding failed.

    Raised for malformed structured output, transport failures and timeouts.
    """
    pass


class SearchError(HelpCenterError):
    """Keyword or vector search failed."""
    pass


class BulkOperationPartialFailure(HelpCenterError):
    """One or more entries of a bulk operation failed.

    Entries listed in ``applied`` were written and are not rolled back.
    """

    def __init__(self, applied: List[Any], failures: Dict[Any, Exception]):
        failed_ids = ", ".join(str(key) for key in failures)
        super().__init__(f"{len(failures)} bulk entries failed: {failed_ids}")
        self.applied = applied
        self.failures = failures


class StoreError(HelpCenterError):
    """Base exception for storage backend operations."""
    pass


class StoreConnectionError(StoreError):
    """Connection error to the storage backend."""
    pass


class StoreQueryError(StoreError):
    """Query error in the storage backend."""
    pass
