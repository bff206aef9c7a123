"""Clients for the external model providers.

- ``base``: ``StructuredCompletionClient`` and ``EmbeddingProvider`` interfaces.
- ``openai_client``: httpx implementation for OpenAI-compatible APIs.
"""
