"""Embedding-term generation for articles."""
