"""Backing document store interface and in-memory implementation.

The store is the single source of truth for documents. Writes are
last-write-wins: no concurrency token is checked on update.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from notesorter.models.blocks import utcnow
from notesorter.models.document import Document
from notesorter.services.exceptions import DocumentNotFoundError
from notesorter.utils.logging import get_logger


logger = get_logger(__name__)


class DocumentStore(ABC):
    """Abstract CRUD interface over documents keyed by an opaque id.

    Implementations must never hard-delete documents; deletion is a
    soft-delete patch (``{"is_deleted": True}``).
    """

    @abstractmethod
    async def get(self, document_id: str) -> Document:
        """Return a live document.

        Raises:
            DocumentNotFoundError: If the id is unknown or soft-deleted
        """
        pass

    @abstractmethod
    async def update(self, document_id: str, patch: dict[str, Any]) -> Document:
        """Apply a field patch and return the updated document.

        ``updated_at`` is refreshed unless the patch sets it.

        Raises:
            DocumentNotFoundError: If the id is unknown
        """
        pass

    @abstractmethod
    async def create(self, fields: dict[str, Any]) -> str:
        """Create a document from fields and return its new id."""
        pass

    @abstractmethod
    async def list_by_parent(self, parent_id: Optional[str]) -> list[Document]:
        """Live documents whose parent is ``parent_id`` (None = top level)."""
        pass

    @abstractmethod
    async def list_all(self, **filters: Any) -> list[Document]:
        """Live documents whose fields equal every given filter value."""
        pass

    @abstractmethod
    async def load_profile_metadata(self) -> dict[str, Any]:
        """Return the user's profile-level metadata blob."""
        pass

    @abstractmethod
    async def save_profile_metadata(self, metadata: dict[str, Any]) -> None:
        """Replace the user's profile-level metadata blob."""
        pass


def _matches(document: Document, filters: dict[str, Any]) -> bool:
    return all(getattr(document, key, None) == value for key, value in filters.items())


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store, used by tests and as the base for the file store.

    Documents are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, documents: Optional[list[Document]] = None):
        self._documents: dict[str, Document] = {}
        self._profile: dict[str, Any] = {}
        for document in documents or []:
            self._documents[document.id] = document.model_copy(deep=True)

    def _require(self, document_id: str) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def get(self, document_id: str) -> Document:
        document = self._require(document_id)
        if document.is_deleted:
            raise DocumentNotFoundError(document_id)
        return document.model_copy(deep=True)

    async def update(self, document_id: str, patch: dict[str, Any]) -> Document:
        current = self._require(document_id)
        data = current.model_dump()
        data.update(copy.deepcopy(patch))
        if "updated_at" not in patch:
            data["updated_at"] = utcnow()
        updated = Document.model_validate(data)
        self._documents[document_id] = updated
        await self._persist()
        logger.debug("document_updated", document_id=document_id, fields=sorted(patch.keys()))
        return updated.model_copy(deep=True)

    async def create(self, fields: dict[str, Any]) -> str:
        data = copy.deepcopy(fields)
        document_id = data.pop("id", None) or str(uuid.uuid4())
        document = Document(id=document_id, **data)
        self._documents[document_id] = document
        await self._persist()
        logger.debug("document_created", document_id=document_id, title=document.title, kind=document.kind)
        return document_id

    async def list_by_parent(self, parent_id: Optional[str]) -> list[Document]:
        return [
            d.model_copy(deep=True)
            for d in self._documents.values()
            if d.parent_id == parent_id and not d.is_deleted
        ]

    async def list_all(self, **filters: Any) -> list[Document]:
        include_deleted = filters.pop("include_deleted", False)
        return [
            d.model_copy(deep=True)
            for d in self._documents.values()
            if (include_deleted or not d.is_deleted) and _matches(d, filters)
        ]

    async def load_profile_metadata(self) -> dict[str, Any]:
        return copy.deepcopy(self._profile)

    async def save_profile_metadata(self, metadata: dict[str, Any]) -> None:
        self._profile = copy.deepcopy(metadata)
        await self._persist()

    async def _persist(self) -> None:
        """Hook for subclasses that write through to durable storage."""
        return None
