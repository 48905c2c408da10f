"""Block models for document content trees.

A block is one addressable structural unit of a leaf document. Every
variant carries its visible text plus optional organization metadata; the
``type`` field is the discriminator used when content is loaded from the
store.
"""

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current time (all stored timestamps are UTC)."""
    return datetime.now(timezone.utc)


class WhereOrganized(BaseModel):
    """One destination a block's content was copied into."""

    destination_path: str = Field(
        ...,
        description="'/'-delimited path of the destination leaf document"
    )

    stored_summary: Optional[str] = Field(
        default=None,
        description="Text that was filed at the destination"
    )

    organized_at: Optional[datetime] = Field(
        default=None,
        description="When the block was filed there"
    )

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrganizationMetadata(BaseModel):
    """Per-block organization state.

    ``is_organized`` duplicates ``organization_status`` because the store's
    attribute schema has always carried both.
    """

    id: str = Field(
        ...,
        description="Globally unique block identifier"
    )

    organization_status: Literal["yes", "no"] = Field(
        default="no",
        description="Whether the block has been filed"
    )

    is_organized: bool = Field(
        default=False,
        description="Redundant confirmation of organization_status"
    )

    where_organized: list[WhereOrganized] = Field(
        default_factory=list,
        description="Destinations this block was filed into, in filing order"
    )

    last_updated: datetime = Field(
        default_factory=utcnow,
        description="Refreshed on every metadata mutation"
    )

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @property
    def organized(self) -> bool:
        return self.organization_status == "yes"


class _BlockBase(BaseModel):
    text: str = Field(
        default="",
        description="Visible block text"
    )

    metadata: Optional[OrganizationMetadata] = Field(
        default=None,
        description="Organization metadata (None until first identified)"
    )

    model_config = ConfigDict(populate_by_name=True)

    @property
    def block_id(self) -> Optional[str]:
        return self.metadata.id if self.metadata else None

    def is_blank(self) -> bool:
        return not self.text.strip()


class Paragraph(_BlockBase):
    type: Literal["paragraph"] = "paragraph"


class Heading(_BlockBase):
    type: Literal["heading"] = "heading"
    level: int = Field(default=1, ge=1, le=6)


class ListItem(_BlockBase):
    type: Literal["list_item"] = "list_item"
    ordered: bool = False


class Quote(_BlockBase):
    type: Literal["quote"] = "quote"


class Code(_BlockBase):
    type: Literal["code"] = "code"
    language: Optional[str] = None


Block = Annotated[
    Union[Paragraph, Heading, ListItem, Quote, Code],
    Field(discriminator="type"),
]
