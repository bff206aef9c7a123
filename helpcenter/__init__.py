"""Help-center article retrieval and ordering engine.

Subpackages:
- ``helpcenter.common``: configuration, logging, metrics, and errors.
- ``helpcenter.clients``: generative and embedding provider clients.
- ``helpcenter.storage``: article store contract and its backends.
- ``helpcenter.embeddings``: search-term extraction and embedding generation.
- ``helpcenter.search``: filters, keyword/vector adapters, and the planner.
- ``helpcenter.ordering``: manual positions and duplicate-root resolution.

Usage:
- ``create_article_service(HelpCenterConfig())`` wires everything together.
"""

__version__ = "0.1.0"
