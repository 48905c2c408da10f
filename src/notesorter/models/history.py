"""Version history models for undoing automated filings."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from notesorter.models.blocks import utcnow


class ChangeRecord(BaseModel):
    """Snapshot of a destination document around one write.

    A ``before`` record holds the content as it was prior to the write. The
    matching ``after`` record is folded into it by the change log, which
    fills in ``new_content_text``.
    """

    timestamp: datetime = Field(default_factory=utcnow)

    trigger: Literal["classification", "manual"] = Field(
        default="classification",
        description="What caused the write"
    )

    phase: Literal["before", "after"] = Field(
        ...,
        description="Whether the snapshot precedes or follows the write"
    )

    action: Literal["created", "updated"] = Field(
        default="updated",
        description="Whether the write created the document or changed it"
    )

    document_id: str = Field(
        ...,
        description="Destination document id"
    )

    title: str = Field(
        default="",
        description="Destination document title (for display)"
    )

    path: Optional[str] = Field(
        default=None,
        description="Destination path the chunk was routed to"
    )

    reason: str = Field(
        default="",
        description="Human-readable reason for the change"
    )

    old_content: Optional[dict[str, Any]] = Field(
        default=None,
        description="Serialized content tree captured at this phase"
    )

    old_content_text: str = Field(
        default="",
        description="Plain-text projection captured at this phase"
    )

    new_content_text: Optional[str] = Field(
        default=None,
        description="Plain text after the write (set when the 'after' snapshot arrives)"
    )

    model_config = {"frozen": False}


class RevertPreview(BaseModel):
    """Description of what reverting a change would do."""

    action: str
    description: str
    warning: Optional[str] = None


class RevertResult(BaseModel):
    """Outcome of a revert."""

    success: bool
    error: Optional[str] = None
    document_id: Optional[str] = None
    title: Optional[str] = None
