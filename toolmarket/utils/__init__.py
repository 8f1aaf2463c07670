"""Shared helpers: errors and retries, vectors, wei amounts, embeddings."""
