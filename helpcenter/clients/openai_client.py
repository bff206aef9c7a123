"""OpenAI-compatible HTTP client for term extraction and embeddings.

Talks to ``/chat/completions`` (JSON-object response format) and
``/embeddings`` with a shared ``httpx.AsyncClient``. Every failure mode
(transport, HTTP status, undecodable body, unexpected shape) is surfaced as
``GenerationError`` so callers handle a single error kind.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import numpy as np
import structlog

from ..common.config import HelpCenterConfig
from ..common.errors import GenerationError
from .base import EmbeddingProvider, StructuredCompletionClient

logger = structlog.get_logger("helpcenter.clients.openai")


class OpenAIClient(StructuredCompletionClient, EmbeddingProvider):
    """Chat-completion and embedding client for OpenAI-compatible APIs."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        term_model: str = "gpt-4-turbo",
        embedding_model: str = "text-embedding-3-small",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Configure the client.

        Parameters
        - api_key: Bearer token sent with every request
        - base_url: API root, e.g. ``https://api.openai.com/v1``
        - term_model: Chat model used for search-term extraction
        - embedding_model: Model used for ``/embeddings``
        - timeout: Per-request timeout in seconds
        - http_client: Optional pre-built client (tests inject a mock transport)
        """
        if not api_key:
            raise ValueError("OpenAI client requires an API key")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.term_model = term_model
        self.embedding_model = embedding_model
        self.timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``body`` and return the decoded JSON response."""
        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            response = await self.http_client.post(url, json=body, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.error("Provider request timed out", endpoint=endpoint, error=str(e))
            raise GenerationError(f"Request to {endpoint} timed out") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "Provider returned error status",
                endpoint=endpoint,
                status=e.response.status_code,
                body=e.response.text[:500],
            )
            raise GenerationError(
                f"{endpoint} returned status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("Provider request failed", endpoint=endpoint, error=str(e))
            raise GenerationError(f"Request to {endpoint} failed: {e}") from e
        except ValueError as e:
            logger.error("Provider response is not JSON", endpoint=endpoint, error=str(e))
            raise GenerationError(f"{endpoint} returned a non-JSON body") from e

    async def complete_json(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Run a chat completion constrained to a JSON object answer."""
        body = {
            "model": self.term_model,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        logger.info("Requesting chat completion", model=self.term_model)
        payload = await self._post("/chat/completions", body)

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError("Chat completion response has no message content") from e

        logger.debug("Chat completion response", content=content)
        try:
            parsed = json.loads(content)
        except (TypeError, ValueError) as e:
            raise GenerationError("Chat completion content is not valid JSON") from e

        if not isinstance(parsed, dict):
            raise GenerationError("Chat completion content is not a JSON object")
        return parsed

    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        """Embed a batch of texts with a single ``/embeddings`` call."""
        if not texts:
            return []

        payload = await self._post(
            "/embeddings",
            {"model": self.embedding_model, "input": texts},
        )

        try:
            data = sorted(payload["data"], key=lambda item: item["index"])
            vectors = [np.asarray(item["embedding"], dtype=np.float32) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise GenerationError("Embedding response has an unexpected shape") from e

        if len(vectors) != len(texts):
            raise GenerationError(
                f"Embedding response has {len(vectors)} vectors for {len(texts)} inputs"
            )
        return vectors

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None


def create_openai_client(config: HelpCenterConfig, **kwargs: Any) -> OpenAIClient:
    """Create a client from ``HelpCenterConfig``."""
    return OpenAIClient(
        api_key=config.openai_api_key or "",
        base_url=config.openai_base_url,
        term_model=config.term_model,
        embedding_model=config.embedding_model,
        timeout=config.request_timeout,
        **kwargs
    )
