"""
Storage component.

Durable document collections for tool definitions and usage records.
"""

from toolmarket.storage.store import (
    DocumentStore,
    FileDocumentStore,
    InMemoryDocumentStore,
    TOOLS_COLLECTION,
    USAGE_COLLECTION,
)

__all__ = [
    "DocumentStore",
    "FileDocumentStore",
    "InMemoryDocumentStore",
    "TOOLS_COLLECTION",
    "USAGE_COLLECTION",
]
