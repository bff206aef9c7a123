"""Article store adapters.

Primary components:
- ``base``: abstract ``ArticleStore`` interface and ``ArticleQuery``.
- ``postgres``: PostgreSQL/pgvector implementation of the interface.
- ``memory``: in-memory implementation for tests and local runs.
- ``factory``: helpers to construct a store from config.
"""
