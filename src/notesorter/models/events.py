"""Typed notification payloads published after pipeline runs and reverts."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class DocumentRef(BaseModel):
    """Identity of a document touched by a run."""

    id: str
    title: str
    path: Optional[str] = None


class ChangedPaths(BaseModel):
    """Destination paths that received content in one run."""

    type: Literal["changed_paths"] = "changed_paths"
    changed_paths: list[str] = Field(default_factory=list)


class DocumentsChanged(BaseModel):
    """Documents created or updated in one run."""

    type: Literal["documents_changed"] = "documents_changed"
    source_document_id: Optional[str] = None
    created: list[DocumentRef] = Field(default_factory=list)
    updated: list[DocumentRef] = Field(default_factory=list)


class DocumentReverted(BaseModel):
    """A change was undone; ``deleted`` is True when the document was removed."""

    type: Literal["document_reverted"] = "document_reverted"
    document: DocumentRef
    deleted: bool = False
