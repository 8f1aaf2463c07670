"""
Document store implementations.

The marketplace keeps two logical collections, ``tools`` (keyed by tool id)
and ``usage`` (append-only, keyed by record id). Components talk to the
abstract DocumentStore; the file-backed store persists one JSON document per
file, and the in-memory store keeps documents on the instance.
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from toolmarket.utils.error_handling import DuplicateKeyError, StorageError

logger = logging.getLogger(__name__)

TOOLS_COLLECTION = "tools"
USAGE_COLLECTION = "usage"

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]


class DocumentStore(ABC):
    """
    Durable store of JSON-compatible documents grouped into collections.

    Writes of a single document are atomic; there are no multi-document
    transactions.
    """

    @abstractmethod
    async def insert(self, collection: str, doc_id: str, document: Document) -> None:
        """Insert a new document; raises DuplicateKeyError if ``doc_id`` exists."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return a copy of a document, or None if it does not exist."""

    @abstractmethod
    async def replace(self, collection: str, doc_id: str, document: Document) -> bool:
        """Replace an existing document; returns False if it does not exist."""

    @abstractmethod
    async def find(self, collection: str, predicate: Optional[Predicate] = None) -> List[Document]:
        """Return copies of all documents matching ``predicate``; callers sort the result."""


class InMemoryDocumentStore(DocumentStore):
    """Store that keeps documents on the instance; nothing survives the process."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}

    def _collection(self, name: str) -> Dict[str, Document]:
        return self._collections.setdefault(name, {})

    async def insert(self, collection: str, doc_id: str, document: Document) -> None:
        docs = self._collection(collection)
        if doc_id in docs:
            raise DuplicateKeyError(f"Document {doc_id} already exists in {collection}", component="storage")
        docs[doc_id] = copy.deepcopy(document)

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        document = self._collection(collection).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def replace(self, collection: str, doc_id: str, document: Document) -> bool:
        docs = self._collection(collection)
        if doc_id not in docs:
            return False
        docs[doc_id] = copy.deepcopy(document)
        return True

    async def find(self, collection: str, predicate: Optional[Predicate] = None) -> List[Document]:
        return [
            copy.deepcopy(document)
            for document in self._collection(collection).values()
            if predicate is None or predicate(document)
        ]


class FileDocumentStore(DocumentStore):
    """
    Store that writes each document to ``<storage_dir>/<collection>/<doc_id>.json``.

    Documents are written to a temporary file and moved into place, so a
    reader never sees a half-written document.
    """

    def __init__(self, storage_dir: str = "data"):
        """
        Initialize the file store.

        Args:
            storage_dir: Root directory for all collections
        """
        self.storage_dir = storage_dir
        self._lock = asyncio.Lock()
        os.makedirs(storage_dir, exist_ok=True)
        logger.info(f"Initialized file document store at {storage_dir}")

    def _collection_dir(self, collection: str) -> str:
        path = os.path.join(self.storage_dir, collection)
        os.makedirs(path, exist_ok=True)
        return path

    def _path(self, collection: str, doc_id: str) -> str:
        if not doc_id or os.sep in doc_id or doc_id.startswith("."):
            raise StorageError(f"Invalid document id: {doc_id!r}", component="storage")
        return os.path.join(self._collection_dir(collection), f"{doc_id}.json")

    def _write(self, path: str, document: Document) -> None:
        directory = os.path.dirname(path)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(f"Failed to write {path}: {e}", component="storage") from e

    def _read(self, path: str) -> Document:
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}", component="storage") from e

    async def insert(self, collection: str, doc_id: str, document: Document) -> None:
        path = self._path(collection, doc_id)
        async with self._lock:
            if os.path.exists(path):
                raise DuplicateKeyError(f"Document {doc_id} already exists in {collection}", component="storage")
            self._write(path, document)

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        path = self._path(collection, doc_id)
        if not os.path.exists(path):
            return None
        return self._read(path)

    async def replace(self, collection: str, doc_id: str, document: Document) -> bool:
        path = self._path(collection, doc_id)
        async with self._lock:
            if not os.path.exists(path):
                return False
            self._write(path, document)
        return True

    async def find(self, collection: str, predicate: Optional[Predicate] = None) -> List[Document]:
        directory = self._collection_dir(collection)
        entries = []
        for filename in os.listdir(directory):
            if not filename.endswith(".json"):
                continue
            path = os.path.join(directory, filename)
            entries.append((os.path.getmtime(path), filename, path))

        documents = []
        for _, _, path in sorted(entries):
            document = self._read(path)
            if predicate is None or predicate(document):
                documents.append(document)
        return documents
