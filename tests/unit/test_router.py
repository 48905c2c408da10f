"""Unit tests for the routing engine."""

import httpx
import pytest

from notesorter.models.blocks import ListItem, Paragraph
from notesorter.organization.destination_tree import build_tree
from notesorter.organization.prompts import build_routing_prompt
from notesorter.organization.router import parse_routing_response
from notesorter.services.exceptions import MalformedResponse

from conftest import make_container, make_leaf, organized_metadata, routing_reply


BLOCKS = [Paragraph(text="Buy milk"), Paragraph(text="Call dentist"), Paragraph(text="Draft Q3 plan")]


@pytest.fixture
def tree():
    return build_tree(
        [
            make_leaf("errands", "Errands", organized=True),
            make_container("work", "Work"),
        ]
    )


class TestParseRoutingResponse:
    """Test classifier output parsing."""

    def test_plain_array(self):
        assert parse_routing_response('[{"targetPath": "/A", "content": "x"}]') == [
            {"targetPath": "/A", "content": "x"}
        ]

    def test_fenced_array_with_prose(self):
        raw = 'Here you go:\n```json\n[{"targetPath": "/A", "content": "x"}]\n```\nDone.'

        assert parse_routing_response(raw)[0]["targetPath"] == "/A"

    def test_object_wrapping_single_array(self):
        raw = '{"chunks": [{"targetPath": "/A", "content": "x"}]}'

        assert parse_routing_response(raw) == [{"targetPath": "/A", "content": "x"}]

    def test_not_json_raises(self):
        with pytest.raises(MalformedResponse):
            parse_routing_response("I could not decide, sorry")

    def test_object_without_array_raises(self):
        with pytest.raises(MalformedResponse):
            parse_routing_response('{"targetPath": "/A"}')


class TestRoute:
    """Test the route operation end to end against a scripted classifier."""

    @pytest.mark.asyncio
    async def test_returns_valid_chunks_in_order(self, make_router, tree):
        router, classifier = make_router(
            routing_reply(
                {"targetPath": "/Errands", "content": "Buy milk\nCall dentist", "sources": [1, 2]},
                {"targetPath": "/Work/Planning", "content": "Draft Q3 plan", "sources": [3]},
            )
        )

        chunks = await router.route("Scratch", BLOCKS, tree, "Buy milk\n\nCall dentist\n\nDraft Q3 plan")

        assert [c.path for c in chunks] == ["/Errands", "/Work/Planning"]
        assert chunks[0].sources == [1, 2]
        assert classifier.models == ["primary-model"]

    @pytest.mark.asyncio
    async def test_accepts_legacy_target_file_path_key(self, make_router, tree):
        router, _ = make_router(routing_reply({"targetFilePath": "/Errands", "content": "Buy milk", "relevance": 0.9}))

        chunks = await router.route("Scratch", BLOCKS[:1], tree, "Buy milk")

        assert chunks[0].path == "/Errands"

    @pytest.mark.asyncio
    async def test_zero_blocks_skips_classifier(self, make_router, tree):
        router, classifier = make_router(routing_reply())

        assert await router.route("Scratch", [], tree, "") == []
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_drops_blank_and_container_entries(self, make_router, tree):
        router, _ = make_router(
            routing_reply(
                {"targetPath": "", "content": "Buy milk"},
                {"targetPath": "/Errands", "content": "   "},
                {"targetPath": "/work", "content": "Draft Q3 plan"},
                {"targetPath": "/Errands", "content": "Call dentist"},
            )
        )

        chunks = await router.route("Scratch", BLOCKS, tree, "")

        assert [(c.path, c.content) for c in chunks] == [("/Errands", "Call dentist")]

    @pytest.mark.asyncio
    async def test_all_invalid_entries_fall_back_to_inbox(self, make_router, tree):
        router, classifier = make_router(routing_reply({"targetPath": "/Work", "content": "x"}))

        chunks = await router.route("Scratch", BLOCKS, tree, "")

        assert len(chunks) == 1
        assert chunks[0].path == "/Inbox"
        assert chunks[0].content == "Buy milk\nCall dentist\nDraft Q3 plan"
        assert len(classifier.calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_primary_retries_with_fallback_model(self, make_router, tree):
        router, classifier = make_router(
            "not json at all",
            routing_reply({"targetPath": "/Errands", "content": "Buy milk"}),
        )

        chunks = await router.route("Scratch", BLOCKS[:1], tree, "Buy milk")

        assert classifier.models == ["primary-model", "fallback-model"]
        assert chunks[0].path == "/Errands"

    @pytest.mark.asyncio
    async def test_both_attempts_failing_falls_back_to_inbox(self, make_router, tree):
        router, classifier = make_router(
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
        )

        chunks = await router.route("Scratch", BLOCKS, tree, "")

        assert classifier.models == ["primary-model", "fallback-model"]
        assert [c.path for c in chunks] == ["/Inbox"]
        assert chunks[0].sources == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_inbox_chunk_carries_source_blocks_unchanged(self, make_router, tree):
        blocks = [
            Paragraph(text="- Buy milk", metadata=organized_metadata("scratch-paragraph-1760870400000-0a1b2c3d")),
            ListItem(text="Call dentist", ordered=True),
        ]
        router, _ = make_router(httpx.ConnectError("connection refused"))

        chunks = await router.route("Scratch", blocks, tree, "")

        verbatim = chunks[0].verbatim_blocks
        assert [(b.type, b.text) for b in verbatim] == [("paragraph", "- Buy milk"), ("list_item", "Call dentist")]
        assert all(b.metadata is None for b in verbatim)
        assert blocks[0].metadata is not None
        assert "verbatim_blocks" not in chunks[0].model_dump()

    @pytest.mark.asyncio
    async def test_configured_inbox_path(self, make_router, tree):
        router, _ = make_router("garbage", "garbage", inbox_path="Unsorted/Notes")

        chunks = await router.route("Scratch", BLOCKS[:1], tree, "")

        assert chunks[0].path == "/Unsorted/Notes"

    @pytest.mark.asyncio
    async def test_no_deduplication_of_same_destination(self, make_router, tree):
        router, _ = make_router(
            routing_reply(
                {"targetPath": "/Errands", "content": "Buy milk"},
                {"targetPath": "/Errands", "content": "Call dentist"},
            )
        )

        chunks = await router.route("Scratch", BLOCKS[:2], tree, "")

        assert [c.content for c in chunks] == ["Buy milk", "Call dentist"]

    @pytest.mark.asyncio
    async def test_prompt_contains_tree_and_numbered_blocks(self, make_router, tree):
        router, classifier = make_router(routing_reply({"targetPath": "/Errands", "content": "x"}))

        await router.route("Scratch", BLOCKS, tree, "context", organization_rules="Groceries go to /Errands")

        prompt = classifier.calls[0][0]
        assert "[FILE] Errands" in prompt
        assert "[DIR] Work" in prompt
        assert "1. Buy milk" in prompt
        assert "3. Draft Q3 plan" in prompt
        assert "Groceries go to /Errands" in prompt


class TestBuildRoutingPrompt:
    """Test prompt construction details."""

    def test_source_text_truncated_to_excerpt(self):
        prompt = build_routing_prompt("Scratch", ["a"], "", "x" * 5000, excerpt_chars=1200)

        assert "x" * 1200 in prompt
        assert "x" * 1201 not in prompt

    def test_braces_in_user_text_are_kept(self):
        prompt = build_routing_prompt("Notes {draft}", ["use {curly} braces"], "", "")

        assert 'PAGE TITLE: "Notes {draft}"' in prompt
        assert "1. use {curly} braces" in prompt

    def test_rules_section_omitted_when_blank(self):
        prompt = build_routing_prompt("Scratch", ["a"], "", "", organization_rules="   ")

        assert "ORGANIZATION RULES" not in prompt
