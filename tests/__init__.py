"""Tests for the help-center retrieval engine.

Unit tests run against the in-memory article store with fake model providers.
Tests under ``integration/`` need a PostgreSQL database with pgvector and are
skipped unless ``HELPCENTER_TEST_DATABASE_DSN`` is set.
"""
