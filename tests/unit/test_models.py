"""Unit tests for data models."""

import pytest
from pydantic import ValidationError

from notesorter.models.blocks import OrganizationMetadata, Paragraph
from notesorter.models.document import Document, DocumentContent
from notesorter.models.routing import RoutedChunk, normalize_path, split_path


class TestDocument:
    """Test the document model."""

    def test_leaf_defaults_to_empty_content(self):
        doc = Document(id="d1", title="Scratch")

        assert doc.kind == "leaf"
        assert doc.content is not None
        assert doc.blocks == []

    def test_container_rejects_content(self):
        with pytest.raises(ValidationError):
            Document(id="c1", title="Work", kind="container", content=DocumentContent())

    def test_container_has_no_blocks(self):
        doc = Document(id="c1", title="Work", kind="container")

        assert doc.content is None
        assert doc.blocks == []

    def test_blocks_load_by_discriminator(self):
        doc = Document.model_validate(
            {
                "id": "d1",
                "title": "Scratch",
                "content": {
                    "blocks": [
                        {"type": "heading", "text": "Plan", "level": 2},
                        {"type": "list_item", "text": "Buy milk"},
                    ]
                },
            }
        )

        assert [b.type for b in doc.blocks] == ["heading", "list_item"]
        assert doc.blocks[0].level == 2

    def test_organization_rules(self):
        doc = Document(id="d1", title="Scratch", metadata={"organizationRules": "Recipes go to /Cooking"})

        assert doc.organization_rules == "Recipes go to /Cooking"
        assert Document(id="d2", title="x", metadata={"organizationRules": "  "}).organization_rules is None

    def test_plain_text_projection(self):
        content = DocumentContent(blocks=[Paragraph(text="a"), Paragraph(text=" "), Paragraph(text="b")])

        assert content.plain_text() == "a\n\nb"


class TestOrganizationMetadata:
    """Test metadata serialization aliases."""

    def test_accepts_camel_case_attributes(self):
        metadata = OrganizationMetadata.model_validate(
            {
                "id": "x",
                "organizationStatus": "yes",
                "isOrganized": True,
                "whereOrganized": [{"destinationPath": "/Errands", "storedSummary": "Buy milk"}],
            }
        )

        assert metadata.organization_status == "yes"
        assert metadata.where_organized[0].destination_path == "/Errands"

    def test_dumps_camel_case_by_alias(self):
        data = OrganizationMetadata(id="x").model_dump(by_alias=True)

        assert data["organizationStatus"] == "no"
        assert "lastUpdated" in data

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            OrganizationMetadata(id="x", organization_status="maybe")


class TestRoutedChunk:
    """Test routing models."""

    def test_target_path_aliases(self):
        assert RoutedChunk.model_validate({"targetPath": "/A", "content": "x"}).target_path == "/A"
        assert RoutedChunk.model_validate({"targetFilePath": "/B", "content": "x"}).target_path == "/B"
        assert RoutedChunk(target_path="/C", content="x").target_path == "/C"

    def test_path_normalization(self):
        chunk = RoutedChunk(target_path=" Work//Planning/ ", content="x")

        assert chunk.path == "/Work/Planning"
        assert split_path(chunk.target_path) == ["Work", "Planning"]

    def test_sources_are_coerced(self):
        chunk = RoutedChunk.model_validate({"targetPath": "/A", "content": "x", "sources": ["1", 2, "n/a"]})

        assert chunk.sources == [1, 2]

    def test_normalize_empty_path(self):
        assert normalize_path(" / ") == ""
        assert split_path("") == []
