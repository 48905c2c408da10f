"""Pydantic data models for notesorter."""

from notesorter.models.blocks import (
    Block,
    Code,
    Heading,
    ListItem,
    OrganizationMetadata,
    Paragraph,
    Quote,
    WhereOrganized,
)
from notesorter.models.document import Document, DocumentContent
from notesorter.models.routing import DestinationTreeNode, RoutedChunk
from notesorter.models.history import ChangeRecord, RevertPreview, RevertResult

__all__ = [
    "Block",
    "Code",
    "Heading",
    "ListItem",
    "OrganizationMetadata",
    "Paragraph",
    "Quote",
    "WhereOrganized",
    "Document",
    "DocumentContent",
    "DestinationTreeNode",
    "RoutedChunk",
    "ChangeRecord",
    "RevertPreview",
    "RevertResult",
]
