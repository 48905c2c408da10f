"""Shared test fixtures for all test modules."""

import json
from typing import Callable, Optional, Union

import pytest

from notesorter.models.blocks import OrganizationMetadata, Paragraph
from notesorter.models.document import Document, DocumentContent
from notesorter.organization.block_tracker import BlockTracker
from notesorter.organization.history import ChangeLog, VersionService
from notesorter.organization.page_updater import PageUpdater
from notesorter.organization.router import Router
from notesorter.services.event_bus import EventBus
from notesorter.services.store import InMemoryDocumentStore


Reply = Union[str, Exception, Callable[[str, str], str]]


class FakeClassifier:
    """
    Scripted classification service.

    Each call consumes the next reply: a string is returned, an exception is
    raised, a callable is called with (prompt, model). The last reply repeats
    once the script runs out.
    """

    def __init__(self, *replies: Reply):
        self.replies = list(replies)
        self.calls: list[tuple[str, str]] = []

    async def invoke(self, prompt: str, model: str) -> str:
        self.calls.append((prompt, model))
        index = min(len(self.calls), len(self.replies)) - 1
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt, model)
        return reply

    @property
    def models(self) -> list[str]:
        return [model for _, model in self.calls]


def routing_reply(*entries: dict) -> str:
    """Serialize routing entries the way a well-behaved classifier would."""
    return json.dumps(list(entries))


def make_leaf(
    document_id: str,
    title: str,
    texts: Optional[list[str]] = None,
    parent_id: Optional[str] = None,
    organized: bool = False,
    metadata: Optional[dict] = None,
) -> Document:
    """Build a leaf document whose blocks are plain paragraphs."""
    texts = texts or []
    return Document(
        id=document_id,
        title=title,
        parent_id=parent_id,
        kind="leaf",
        organized=organized,
        content=DocumentContent(blocks=[Paragraph(text=t) for t in texts]),
        content_text="\n\n".join(texts),
        metadata=metadata or {},
    )


def make_container(document_id: str, title: str, parent_id: Optional[str] = None) -> Document:
    return Document(id=document_id, title=title, parent_id=parent_id, kind="container", organized=True)


def organized_metadata(block_id: str) -> OrganizationMetadata:
    return OrganizationMetadata(id=block_id, organization_status="yes", is_organized=True)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def tracker():
    return BlockTracker()


@pytest.fixture
def change_log(store):
    return ChangeLog(store, capacity=10, max_age_days=7)


@pytest.fixture
def versions(store, change_log, event_bus):
    return VersionService(store, change_log, event_bus)


@pytest.fixture
def page_updater(store, versions, tracker):
    return PageUpdater(store, versions, tracker)


@pytest.fixture
def make_router():
    """Factory for routers over a scripted classifier."""

    def factory(*replies: Reply, inbox_path: str = "/Inbox") -> tuple[Router, FakeClassifier]:
        classifier = FakeClassifier(*replies)
        router = Router(classifier, model="primary-model", fallback_model="fallback-model", inbox_path=inbox_path)
        return router, classifier

    return factory
