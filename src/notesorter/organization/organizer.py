"""Organization pipeline: from a scratch document to filed destinations."""

from dataclasses import dataclass, field
from textwrap import dedent
from typing import Optional, Sequence

from notesorter.models.config import Config
from notesorter.models.document import Document, DocumentContent
from notesorter.models.events import ChangedPaths, DocumentRef, DocumentsChanged
from notesorter.models.routing import RoutedChunk
from notesorter.organization.block_tracker import BlockTracker
from notesorter.organization.destination_tree import build_tree
from notesorter.organization.history import ChangeLog, VersionService
from notesorter.organization.page_updater import ApplyResult, PageUpdater
from notesorter.organization.router import Router
from notesorter.services.event_bus import EventBus
from notesorter.services.llm_client import ClassificationService, LLMClient
from notesorter.services.store import DocumentStore
from notesorter.utils.logging import get_logger
from notesorter.utils.text import markdown_to_blocks, normalize_text


logger = get_logger(__name__)


README_TEXT = dedent("""
    # Welcome to PARA

    PARA keeps every note in one of four places, plus a personal corner.

    - Projects: short-term efforts with a clear outcome
    - Areas: long-term responsibilities you maintain
    - Resources: reference material you may reuse
    - Archives: finished or inactive items
    - Me: personal notes and the central TODOs list

    Getting started:

    1. Create a folder inside Projects for each active initiative.
    2. Move anything inactive to Archives instead of deleting it.
    3. Keep reference documents in Resources.
    4. Review TODOs every morning and file tasks into Projects or Areas.
""").strip()

# (title, kind, initial text) of the top-level destinations a new store starts with
STARTER_HIERARCHY = (
    ("Projects", "container", None),
    ("Areas", "container", None),
    ("Resources", "container", None),
    ("Archives", "container", None),
    ("Me", "container", None),
    ("TODOs", "leaf", ""),
    ("README", "leaf", README_TEXT),
)


@dataclass
class OrganizeResult:
    """Summary of one pipeline run."""

    document_id: str
    unorganized_count: int = 0
    chunks: list[RoutedChunk] = field(default_factory=list)
    applied: Optional[ApplyResult] = None
    marked_block_ids: list[str] = field(default_factory=list)

    @property
    def changed_paths(self) -> list[str]:
        return self.applied.changed_paths if self.applied else []

    @property
    def skipped(self) -> bool:
        return self.unorganized_count == 0


@dataclass
class SeedResult:
    """Ids of starter destinations created by, or found before, a seeding run."""

    created: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)


def _attributed_indices(chunk: RoutedChunk, block_texts: Sequence[str], exact_only: bool) -> list[int]:
    """
    1-based indices of the routed blocks a written chunk accounts for.

    Valid ``sources`` win. Without them the chunk covers every block, unless
    ``exact_only`` is set (some chunk of the batch failed), in which case only
    blocks whose text appears in the chunk's content count.
    """
    indices = [i for i in (chunk.sources or []) if 1 <= i <= len(block_texts)]
    if indices:
        return indices
    if not exact_only:
        return list(range(1, len(block_texts) + 1))

    content = normalize_text(chunk.content).casefold()
    return [
        position
        for position, text in enumerate(block_texts, start=1)
        if normalize_text(text) and normalize_text(text).casefold() in content
    ]


class Organizer:
    """
    Runs the organization pipeline for one source document at a time.

    The trigger manager decides when to call ``organize_document``; this
    class only knows how.

    Example:
        >>> organizer = Organizer.from_config(config, JsonFileDocumentStore(path))
        >>> result = await organizer.organize_document(scratch_id)
        >>> result.changed_paths
        ['/Errands', '/Work/Planning']
    """

    def __init__(
        self,
        store: DocumentStore,
        router: Router,
        page_updater: PageUpdater,
        tracker: Optional[BlockTracker] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.router = router
        self.page_updater = page_updater
        self.tracker = tracker or page_updater.tracker
        self.event_bus = event_bus

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: DocumentStore,
        classifier: Optional[ClassificationService] = None,
        event_bus: Optional[EventBus] = None,
    ) -> "Organizer":
        """Wire up the pipeline from configuration."""
        classifier = classifier or LLMClient(config.llm)
        router = Router(
            classifier,
            model=config.llm.model,
            fallback_model=config.llm.effective_fallback_model,
            excerpt_chars=config.organizer.excerpt_chars,
            inbox_path=config.organizer.inbox_path,
        )
        change_log = ChangeLog(
            store,
            capacity=config.organizer.history_capacity,
            max_age_days=config.organizer.history_max_age_days,
        )
        tracker = BlockTracker()
        versions = VersionService(store, change_log, event_bus)
        return cls(store, router, PageUpdater(store, versions, tracker), tracker, event_bus)

    @property
    def versions(self) -> VersionService:
        return self.page_updater.versions

    async def organize_document(self, document_id: str) -> OrganizeResult:
        """
        File every unorganized block of a document.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        return await self._organize(document_id, full=False)

    async def organize_full_document(self, document_id: str) -> OrganizeResult:
        """
        Route every non-blank block of a document, filed or not.

        Used to re-file a whole page on request. Destinations that already
        end with the same text are skipped by the duplicate-filing guard.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        return await self._organize(document_id, full=True)

    async def _organize(self, document_id: str, full: bool) -> OrganizeResult:
        document = await self.store.get(document_id)
        result = OrganizeResult(document_id=document_id)
        if not document.is_leaf:
            logger.debug("organize_skipped_container", document_id=document_id)
            return result

        cleared = self.tracker.enforce_unique_ids(document)
        assigned = self.tracker.ensure_identities(document)
        if full:
            blocks = [block for block in document.blocks if not block.is_blank()]
        else:
            blocks = self.tracker.list_unorganized(document)
        result.unorganized_count = len(blocks)

        if not blocks:
            logger.debug("organize_nothing_to_do", document_id=document_id, full=full)
            return result

        if cleared or assigned:
            await self.store.update(document_id, {"content": document.content.model_dump()})

        destinations = await self.store.list_all(organized=True)
        tree = build_tree(destinations)

        logger.info(
            "organize_started",
            document_id=document_id,
            title=document.title,
            full=full,
            block_count=len(blocks),
            destination_count=len(destinations),
        )

        result.chunks = await self.router.route(
            document.title,
            blocks,
            tree,
            document.content_text or document.content.plain_text(),
            organization_rules=document.organization_rules,
        )
        if full:
            reason = f'Full-page organize of "{document.title}"'
        else:
            reason = f'Auto-organized from "{document.title}"'
        result.applied = await self.page_updater.apply_chunks(
            result.chunks,
            trigger="classification",
            reason=reason,
        )

        result.marked_block_ids = await self._mark_source_blocks(
            document_id,
            [block.metadata.id for block in blocks],
            [block.text for block in blocks],
            result.applied,
        )

        logger.info(
            "organize_completed",
            document_id=document_id,
            chunk_count=len(result.chunks),
            applied_count=len(result.applied.applied),
            failed_count=len(result.applied.failed),
            marked_count=len(result.marked_block_ids),
            unmarked_count=len(blocks) - len(result.marked_block_ids),
            changed_paths=result.applied.changed_paths,
        )

        await self._publish(document_id, result.applied)
        return result

    async def _mark_source_blocks(
        self,
        document_id: str,
        block_ids: list[str],
        block_texts: list[str],
        applied: ApplyResult,
    ) -> list[str]:
        """Mark routed blocks organized on the latest copy of the source document."""
        if not applied.applied:
            return []

        # Re-read: the user may have kept typing while the classifier ran
        document = await self.store.get(document_id)
        exact_only = bool(applied.failed)
        marked: list[str] = []
        for chunk in applied.applied:
            for index in _attributed_indices(chunk, block_texts, exact_only):
                block_id = block_ids[index - 1]
                if self.tracker.mark_organized(document, block_id, chunk.path, stored_summary=chunk.content):
                    if block_id not in marked:
                        marked.append(block_id)

        self.tracker.enforce_unique_ids(document)
        self.tracker.ensure_identities(document)
        await self.store.update(document_id, {"content": document.content.model_dump()})
        return marked

    async def _publish(self, document_id: str, applied: ApplyResult) -> None:
        if self.event_bus is None or not (applied.changed_paths or applied.created):
            return

        def ref(document: Document) -> DocumentRef:
            return DocumentRef(
                id=document.id,
                title=document.title,
                path=applied.document_paths.get(document.id),
            )

        await self.event_bus.publish(ChangedPaths(changed_paths=list(applied.changed_paths)))
        await self.event_bus.publish(
            DocumentsChanged(
                source_document_id=document_id,
                created=[ref(d) for d in applied.created],
                updated=[ref(d) for d in applied.updated],
            )
        )

    async def apply_manual(
        self,
        document_id: str,
        content: str,
        reason: str = "Manual apply",
    ) -> Optional[Document]:
        """Append user-approved text to a document, recorded as a manual change."""
        updated = await self.page_updater.apply_to_document(document_id, content, reason)
        if updated is not None and self.event_bus is not None:
            await self.event_bus.publish(
                DocumentsChanged(updated=[DocumentRef(id=updated.id, title=updated.title)])
            )
        return updated

    async def seed_hierarchy(self) -> SeedResult:
        """
        Create the starter PARA destinations that do not exist yet.

        Safe to run repeatedly: a top-level organized document with the same
        title (case-insensitive) and kind counts as existing. An item that
        fails to be created is logged and skipped.
        """
        result = SeedResult()
        top_level = await self.store.list_by_parent(None)
        created: list[DocumentRef] = []

        for title, kind, text in STARTER_HIERARCHY:
            match = next(
                (
                    d for d in top_level
                    if d.organized and d.kind == kind and d.title.strip().casefold() == title.casefold()
                ),
                None,
            )
            if match is not None:
                result.existing.append(match.id)
                logger.debug("starter_destination_exists", title=title, document_id=match.id)
                continue

            try:
                document_id = await self.store.create(
                    {"title": title, "parent_id": None, "kind": kind, "organized": True}
                )
                if text:
                    blocks = markdown_to_blocks(text)
                    self.tracker.mark_all_organized(blocks, document_id)
                    await self.store.update(
                        document_id,
                        {"content": DocumentContent(blocks=blocks).model_dump(), "content_text": text},
                    )
            except Exception as e:
                logger.error("starter_destination_failed", title=title, kind=kind, error=str(e))
                continue

            result.created.append(document_id)
            created.append(DocumentRef(id=document_id, title=title, path=f"/{title}"))
            logger.info("starter_destination_created", title=title, kind=kind, document_id=document_id)

        logger.info("hierarchy_seeded", created_count=len(result.created), existing_count=len(result.existing))
        if created and self.event_bus is not None:
            await self.event_bus.publish(DocumentsChanged(created=created))
        return result
