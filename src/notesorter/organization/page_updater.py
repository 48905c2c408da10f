"""Chunk applier: writes routed chunks into destination documents.

Content is only ever appended. Existing destination blocks are never
rewritten, and each write is bracketed by before/after change records so
it can be undone.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from notesorter.models.document import Document, DocumentContent
from notesorter.models.history import ChangeRecord
from notesorter.models.routing import RoutedChunk, normalize_path, split_path
from notesorter.organization.block_tracker import BlockTracker
from notesorter.organization.history import VersionService
from notesorter.services.exceptions import DestinationResolutionFailure
from notesorter.services.store import DocumentStore
from notesorter.utils.logging import get_logger
from notesorter.utils.text import markdown_to_blocks, normalize_text


logger = get_logger(__name__)


@dataclass
class ApplyResult:
    """Outcome of applying a batch of chunks."""

    created: list[Document] = field(default_factory=list)
    updated: list[Document] = field(default_factory=list)
    changed_paths: list[str] = field(default_factory=list)
    applied: list[RoutedChunk] = field(default_factory=list)
    failed: list[RoutedChunk] = field(default_factory=list)
    document_paths: dict[str, str] = field(default_factory=dict)

    def note_write(self, document_id: str, path: str) -> None:
        self.document_paths[document_id] = path
        if path not in self.changed_paths:
            self.changed_paths.append(path)


class PageUpdater:
    """
    Resolves chunk paths to leaf documents and appends chunk content.

    Missing containers and leaves along a path are created on the way.
    Each chunk is applied independently: one bad path does not stop the
    rest of the batch.
    """

    def __init__(
        self,
        store: DocumentStore,
        versions: VersionService,
        tracker: Optional[BlockTracker] = None,
    ):
        self.store = store
        self.versions = versions
        self.tracker = tracker or BlockTracker()

    async def apply_chunks(
        self,
        chunks: Sequence[RoutedChunk],
        trigger: str = "classification",
        reason: str = "Auto-organized content",
    ) -> ApplyResult:
        """
        Apply routed chunks in order.

        Args:
            chunks: Routed chunks from the router
            trigger: ``classification`` or ``manual`` (recorded in history)
            reason: Human-readable reason stored with each change record

        Returns:
            ApplyResult listing created/updated documents, changed paths and
            the chunks that landed
        """
        result = ApplyResult()
        created_ids: set[str] = set()
        updated_ids: set[str] = set()

        for chunk in chunks:
            document: Optional[Document] = None
            try:
                document, created = await self.resolve_path(chunk.target_path)
                if created:
                    await self.versions.record(
                        ChangeRecord(
                            trigger=trigger,
                            phase="before",
                            action="created",
                            document_id=document.id,
                            title=document.title,
                            path=chunk.path,
                            reason=reason,
                        )
                    )
                    created_ids.add(document.id)
                    result.created.append(document)

                written = await self._append(
                    document,
                    chunk.content,
                    trigger,
                    reason,
                    chunk.path,
                    record_before=not created,
                    blocks=chunk.verbatim_blocks,
                )
            except DestinationResolutionFailure as e:
                logger.warning("chunk_skipped", path=e.path, error=str(e))
                result.failed.append(chunk)
                continue
            except Exception as e:
                # One failed write must not stop the rest of the batch
                logger.error(
                    "chunk_failed",
                    path=chunk.path,
                    document_id=document.id if document is not None else None,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.failed.append(chunk)
                continue

            result.applied.append(chunk)
            if written is None:
                continue

            if document.id in created_ids:
                result.created = [written if d.id == written.id else d for d in result.created]
            elif document.id in updated_ids:
                result.updated = [written if d.id == written.id else d for d in result.updated]
            else:
                updated_ids.add(document.id)
                result.updated.append(written)
            result.note_write(written.id, chunk.path)

            logger.info(
                "chunk_applied",
                path=chunk.path,
                document_id=document.id,
                created=created,
                content_length=len(chunk.content),
            )

        return result

    async def apply_to_document(
        self,
        document_id: str,
        content: str,
        reason: str = "Manual apply",
    ) -> Optional[Document]:
        """
        Append user-approved text to an existing leaf (trigger ``manual``).

        Returns:
            The updated document, or None if the text was already there

        Raises:
            DocumentNotFoundError: If the document does not exist
            DestinationResolutionFailure: If the document is a container
        """
        document = await self.store.get(document_id)
        if not document.is_leaf:
            raise DestinationResolutionFailure(document.title, "Cannot write content into a container")
        return await self._append(document, content, "manual", reason, None, record_before=True)

    async def resolve_path(self, target_path: str) -> tuple[Document, bool]:
        """
        Find or create the leaf a path names.

        Segments are matched case-insensitively against organized, live
        documents. Missing inner segments become containers; a missing final
        segment becomes a leaf.

        Returns:
            (leaf document, whether the leaf was created)

        Raises:
            DestinationResolutionFailure: If the path is empty, passes through
                a leaf, or ends at a container
        """
        segments = split_path(target_path)
        if not segments:
            raise DestinationResolutionFailure(target_path, "Empty destination path")

        path = normalize_path(target_path)
        parent_id: Optional[str] = None
        for position, segment in enumerate(segments):
            is_last = position == len(segments) - 1
            match = await self._find_child(parent_id, segment)

            if match is None:
                kind = "leaf" if is_last else "container"
                document_id = await self.store.create(
                    {
                        "title": segment,
                        "parent_id": parent_id,
                        "kind": kind,
                        "organized": True,
                    }
                )
                logger.info("destination_created", path=path, title=segment, kind=kind, document_id=document_id)
                if is_last:
                    return await self.store.get(document_id), True
                parent_id = document_id
                continue

            if is_last:
                if not match.is_leaf:
                    raise DestinationResolutionFailure(path, "Destination is a container, not a document")
                return match, False

            if match.is_leaf:
                raise DestinationResolutionFailure(path, f"'{match.title}' is a document, not a container")
            parent_id = match.id

        raise DestinationResolutionFailure(path)

    async def _find_child(self, parent_id: Optional[str], title: str) -> Optional[Document]:
        wanted = title.casefold()
        candidates = [
            d for d in await self.store.list_by_parent(parent_id)
            if d.organized and d.title.strip().casefold() == wanted
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda d: (d.created_at, d.id))
        return candidates[0]

    async def _append(
        self,
        document: Document,
        text: str,
        trigger: str,
        reason: str,
        path: Optional[str],
        record_before: bool,
        blocks: Optional[Sequence] = None,
    ) -> Optional[Document]:
        """
        Append text as blocks, bracketed by change records. None if skipped.

        When ``blocks`` is given they are appended as-is (copied) instead of
        converting ``text`` from markdown.
        """
        if blocks is not None:
            new_blocks = [block.model_copy(deep=True) for block in blocks]
        else:
            new_blocks = markdown_to_blocks(text)
        if not new_blocks:
            logger.debug("chunk_empty", document_id=document.id)
            return None

        if self._already_filed(document, new_blocks):
            logger.info("duplicate_filing_skipped", document_id=document.id, path=path)
            return None

        if record_before:
            await self.versions.record(
                ChangeRecord(
                    trigger=trigger,
                    phase="before",
                    action="updated",
                    document_id=document.id,
                    title=document.title,
                    path=path,
                    reason=reason,
                    old_content=document.content.model_dump(mode="json"),
                    old_content_text=document.content_text,
                )
            )

        self.tracker.mark_all_organized(new_blocks, document.id)
        document.content = DocumentContent(blocks=[*document.blocks, *new_blocks])
        self.tracker.enforce_unique_ids(document)
        self.tracker.ensure_identities(document)

        if document.content_text.strip():
            content_text = document.content_text + "\n\n" + text
        else:
            content_text = text

        updated = await self.store.update(
            document.id,
            {"content": document.content.model_dump(), "content_text": content_text},
        )

        await self.versions.record(
            ChangeRecord(
                trigger=trigger,
                phase="after",
                action="updated",
                document_id=updated.id,
                title=updated.title,
                path=path,
                reason=reason,
                old_content=updated.content.model_dump(mode="json"),
                old_content_text=updated.content_text,
            )
        )
        return updated

    def _already_filed(self, document: Document, new_blocks: list) -> bool:
        """True if the document already ends with the same normalized text."""
        existing = document.blocks
        if len(existing) < len(new_blocks):
            return False
        tail = existing[len(existing) - len(new_blocks):]
        return [normalize_text(b.text) for b in tail] == [normalize_text(b.text) for b in new_blocks]
