"""Interfaces for the external model providers.

The engine depends on two capabilities only: a chat model that answers with a
JSON object, and an embedding model that maps texts to fixed-size vectors.
Implementations must raise ``GenerationError`` for transport failures and
non-conforming responses.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

import numpy as np


class StructuredCompletionClient(ABC):
    """A generative model that returns structured (JSON object) output."""

    @abstractmethod
    async def complete_json(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Send chat ``messages`` and return the parsed JSON object answer."""
        pass


class EmbeddingProvider(ABC):
    """A model that embeds text."""

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[np.ndarray]:
        """Embed ``texts``, returning one vector per input in input order."""
        pass

    async def embed_one(self, text: str) -> np.ndarray:
        vectors = await self.embed([text])
        return vectors[0]
