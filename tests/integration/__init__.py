"""Tests that run against a live PostgreSQL database with pgvector."""
