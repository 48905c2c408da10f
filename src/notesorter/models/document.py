"""Document model for the backing store."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from notesorter.models.blocks import Block, utcnow


DocumentKind = Literal["container", "leaf"]


class DocumentContent(BaseModel):
    """Structured content tree of a leaf document."""

    blocks: list[Block] = Field(
        default_factory=list,
        description="Top-level blocks in document order"
    )

    def plain_text(self) -> str:
        """Plain-text projection: block texts separated by blank lines."""
        return "\n\n".join(block.text for block in self.blocks if block.text.strip())


class Document(BaseModel):
    """A persisted unit of the user's knowledge hierarchy."""

    id: str = Field(
        ...,
        description="Opaque store identifier"
    )

    title: str = Field(
        ...,
        description="Document title (one path segment)"
    )

    parent_id: Optional[str] = Field(
        default=None,
        description="Parent container id (None for top-level documents)"
    )

    kind: DocumentKind = Field(
        default="leaf",
        description="'container' groups documents, 'leaf' holds content"
    )

    organized: bool = Field(
        default=False,
        description="True for classification destinations, False for scratch/inbox notes"
    )

    content: Optional[DocumentContent] = Field(
        default=None,
        description="Content tree (always None for containers)"
    )

    content_text: str = Field(
        default="",
        description="Plain-text projection of the content"
    )

    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form metadata (e.g. organizationRules)"
    )

    created_at: datetime = Field(default_factory=utcnow)

    updated_at: datetime = Field(default_factory=utcnow)

    is_deleted: bool = Field(
        default=False,
        description="Soft-delete flag"
    )

    model_config = {"frozen": False}

    @model_validator(mode="after")
    def _containers_hold_no_content(self) -> "Document":
        if self.kind == "container" and self.content is not None:
            raise ValueError(f"Container document {self.id!r} cannot hold content")
        if self.kind == "leaf" and self.content is None:
            self.content = DocumentContent()
        return self

    @property
    def is_leaf(self) -> bool:
        return self.kind == "leaf"

    @property
    def organization_rules(self) -> Optional[str]:
        rules = self.metadata.get("organizationRules")
        if isinstance(rules, str) and rules.strip():
            return rules
        return None

    @property
    def blocks(self) -> list:
        return self.content.blocks if self.content is not None else []
