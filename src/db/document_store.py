"""
Document store contract

The engine persists through a generic versioned document store: documents
live at (collection, id), every write bumps the document's version, and a
write may carry the version it expects to replace (compare-and-swap).

Version semantics:
- A missing document has version 0
- expected_version=None writes unconditionally
- expected_version=0 requires that the document does not exist yet
- any other expected_version must equal the stored version

InMemoryDocumentStore implements the contract for tests and local runs.
"""

from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Optional
import asyncio
import logging

from src.exceptions import RecordNotFoundError, ValidationError, VersionConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredDocument:
    """A document body with its current version"""
    data: dict[str, Any]
    version: int


@dataclass(frozen=True)
class WriteOperation:
    """One write inside an atomic batch; data=None deletes the document"""
    collection: str
    document_id: str
    data: Optional[dict[str, Any]]
    expected_version: Optional[int] = None

    @classmethod
    def set(
        cls,
        collection: str,
        document_id: str,
        data: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> "WriteOperation":
        return cls(collection, document_id, data, expected_version)

    @classmethod
    def delete(
        cls,
        collection: str,
        document_id: str,
        expected_version: Optional[int] = None,
    ) -> "WriteOperation":
        return cls(collection, document_id, None, expected_version)


class DocumentStore(ABC):
    """Async versioned document store"""

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        """Document at (collection, id), or None"""

    @abstractmethod
    async def set(
        self,
        collection: str,
        document_id: str,
        data: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Write a document

        Returns:
            The new version

        Raises:
            VersionConflictError: expected_version does not match
            RecordNotFoundError: expected_version > 0 but the document is missing
        """

    @abstractmethod
    async def delete(
        self,
        collection: str,
        document_id: str,
        expected_version: Optional[int] = None,
    ) -> None:
        """Remove a document; same version rules as set()"""

    @abstractmethod
    async def commit_batch(self, writes: list[WriteOperation]) -> dict[tuple[str, str], int]:
        """
        Apply all writes atomically, or none of them

        Returns:
            New version per (collection, id); deletes map to 0
        """

    @abstractmethod
    async def list_documents(self, collection: str) -> dict[str, StoredDocument]:
        """All documents of a collection by id"""


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local document store

    Commits are serialised with an asyncio.Lock so each batch is an atomic
    compare-and-swap across its documents. Reads return deep copies.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, StoredDocument]] = {}
        self._lock = asyncio.Lock()
        logger.debug("InMemoryDocumentStore initialized")

    async def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        stored = self._collections.get(collection, {}).get(document_id)
        if stored is None:
            return None
        return StoredDocument(data=deepcopy(stored.data), version=stored.version)

    async def set(
        self,
        collection: str,
        document_id: str,
        data: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        versions = await self.commit_batch(
            [WriteOperation.set(collection, document_id, data, expected_version)]
        )
        return versions[(collection, document_id)]

    async def delete(
        self,
        collection: str,
        document_id: str,
        expected_version: Optional[int] = None,
    ) -> None:
        await self.commit_batch(
            [WriteOperation.delete(collection, document_id, expected_version)]
        )

    async def commit_batch(self, writes: list[WriteOperation]) -> dict[tuple[str, str], int]:
        keys = [(w.collection, w.document_id) for w in writes]
        if len(set(keys)) != len(keys):
            raise ValidationError(
                message="A batch may write each document only once",
                field="writes",
                value=len(writes),
            )

        async with self._lock:
            # Validate everything before touching anything
            for write in writes:
                self._check_version(write)

            versions: dict[tuple[str, str], int] = {}
            for write in writes:
                documents = self._collections.setdefault(write.collection, {})
                if write.data is None:
                    documents.pop(write.document_id, None)
                    versions[(write.collection, write.document_id)] = 0
                    continue

                current = documents.get(write.document_id)
                new_version = (current.version if current else 0) + 1
                documents[write.document_id] = StoredDocument(
                    data=deepcopy(write.data),
                    version=new_version,
                )
                versions[(write.collection, write.document_id)] = new_version

        logger.debug(f"Committed batch of {len(writes)} writes")
        return versions

    async def list_documents(self, collection: str) -> dict[str, StoredDocument]:
        return {
            document_id: StoredDocument(data=deepcopy(stored.data), version=stored.version)
            for document_id, stored in self._collections.get(collection, {}).items()
        }

    def _check_version(self, write: WriteOperation) -> None:
        current = self._collections.get(write.collection, {}).get(write.document_id)
        current_version = current.version if current else 0

        if write.data is None and current is None:
            raise RecordNotFoundError(
                message=f"Cannot delete missing document {write.collection}/{write.document_id}",
                record_type=write.collection,
                record_id=write.document_id,
            )

        if write.expected_version is None:
            return

        if write.expected_version > 0 and current is None:
            raise RecordNotFoundError(
                message=f"Document {write.collection}/{write.document_id} not found",
                record_type=write.collection,
                record_id=write.document_id,
            )

        if write.expected_version != current_version:
            raise VersionConflictError(
                message=(
                    f"Version conflict on {write.collection}/{write.document_id}: "
                    f"expected {write.expected_version}, found {current_version}"
                ),
                collection=write.collection,
                document_id=write.document_id,
                expected_version=write.expected_version,
                actual_version=current_version,
            )
