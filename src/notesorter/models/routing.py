"""Pydantic models for classifier routing."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from notesorter.models.blocks import Block


def normalize_path(path: str) -> str:
    """
    Normalize a '/'-delimited title path.

    Strips surrounding whitespace from each segment, drops empty segments and
    always returns a single leading slash ("" when nothing is left).

    Example:
        >>> normalize_path(" Work//Planning/ ")
        "/Work/Planning"
    """
    segments = split_path(path)
    return "/" + "/".join(segments) if segments else ""


def split_path(path: str) -> list[str]:
    """Split a title path into its non-empty, stripped segments."""
    return [segment.strip() for segment in (path or "").split("/") if segment.strip()]


class RoutedChunk(BaseModel):
    """One unit of classifier output: content bound for a leaf document."""

    target_path: str = Field(
        ...,
        validation_alias=AliasChoices("targetPath", "targetFilePath", "target_path"),
        serialization_alias="targetPath",
        description="'/'-delimited titles naming a leaf document"
    )

    content: str = Field(
        ...,
        description="Text to file at the destination"
    )

    sources: Optional[list[int]] = Field(
        default=None,
        description="1-based indices of the routed blocks this chunk came from"
    )

    verbatim_blocks: Optional[list[Block]] = Field(
        default=None,
        exclude=True,
        description="Exact source blocks to file as-is (catch-all fallback only)"
    )

    model_config = {"populate_by_name": True}

    @field_validator("sources", mode="before")
    @classmethod
    def _coerce_sources(cls, v):
        if v is None:
            return None
        if not isinstance(v, list):
            v = [v]
        indices = []
        for item in v:
            try:
                indices.append(int(item))
            except (TypeError, ValueError):
                continue
        return indices

    @property
    def path(self) -> str:
        return normalize_path(self.target_path)


class DestinationTreeNode(BaseModel):
    """Slim, content-free view of one document in the destination hierarchy."""

    id: Optional[str] = Field(
        default=None,
        description="Document id (None for the synthetic root)"
    )

    title: str = Field(
        ...,
        description="Document title"
    )

    kind: Literal["container", "leaf", "root"] = Field(
        ...,
        description="Node kind"
    )

    children: list[DestinationTreeNode] = Field(
        default_factory=list,
        description="Child nodes sorted by title"
    )
