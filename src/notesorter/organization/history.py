"""Bounded change history and revert service for automated filings.

History lives in the store's profile metadata blob under ``changeHistory``
so it survives restarts. Only a handful of recent entries are kept.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import ValidationError

from notesorter.models.blocks import utcnow
from notesorter.models.events import DocumentRef, DocumentReverted
from notesorter.models.history import ChangeRecord, RevertPreview, RevertResult
from notesorter.services.event_bus import EventBus
from notesorter.services.exceptions import RevertFailure
from notesorter.services.store import DocumentStore
from notesorter.utils.logging import get_logger


logger = get_logger(__name__)

HISTORY_KEY = "changeHistory"


def _same_entry(a: ChangeRecord, b: ChangeRecord) -> bool:
    return a.document_id == b.document_id and a.timestamp == b.timestamp and a.action == b.action


class ChangeLog:
    """
    Most-recent-first ring buffer of change records, persisted in the store.

    An ``after`` record does not take its own slot: it completes the most
    recent open ``before`` record for the same document by filling in
    ``new_content_text``.
    """

    def __init__(
        self,
        store: DocumentStore,
        capacity: int = 10,
        max_age_days: float = 7.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.capacity = capacity
        self.max_age = timedelta(days=max_age_days)
        self._clock = clock
        self._lock = asyncio.Lock()

    async def _load(self) -> tuple[dict, list[ChangeRecord]]:
        profile = await self.store.load_profile_metadata()
        entries: list[ChangeRecord] = []
        for raw in profile.get(HISTORY_KEY, []):
            try:
                entries.append(ChangeRecord.model_validate(raw))
            except ValidationError as e:
                logger.warning("change_history_entry_invalid", error=str(e))
        return profile, self._prune(entries)

    def _prune(self, entries: list[ChangeRecord]) -> list[ChangeRecord]:
        cutoff = self._clock() - self.max_age
        fresh = [entry for entry in entries if entry.timestamp >= cutoff]
        return fresh[: self.capacity]

    async def _save(self, profile: dict, entries: list[ChangeRecord]) -> None:
        profile[HISTORY_KEY] = [entry.model_dump(mode="json") for entry in entries]
        await self.store.save_profile_metadata(profile)

    async def entries(self) -> list[ChangeRecord]:
        """Current history, most recent first, with expired entries dropped."""
        _, entries = await self._load()
        return entries

    async def append(self, change: ChangeRecord) -> ChangeRecord:
        """
        Add a record, merging ``after`` snapshots into their ``before`` entry.

        Returns:
            The stored (possibly merged) entry
        """
        async with self._lock:
            profile, entries = await self._load()

            if change.phase == "after":
                for entry in entries:
                    if (
                        entry.document_id == change.document_id
                        and entry.phase == "before"
                        and entry.new_content_text is None
                    ):
                        entry.new_content_text = change.old_content_text
                        await self._save(profile, entries)
                        logger.debug("change_record_completed", document_id=change.document_id)
                        return entry

            entries.insert(0, change)
            entries = self._prune(entries)
            await self._save(profile, entries)

        logger.info(
            "change_recorded",
            document_id=change.document_id,
            action=change.action,
            phase=change.phase,
            trigger=change.trigger,
            history_size=len(entries),
        )
        return change

    async def contains(self, change: ChangeRecord) -> bool:
        return any(_same_entry(entry, change) for entry in await self.entries())

    async def remove(self, change: ChangeRecord) -> bool:
        """Drop an entry. Returns False if it was not in the log."""
        async with self._lock:
            profile, entries = await self._load()
            remaining = [entry for entry in entries if not _same_entry(entry, change)]
            if len(remaining) == len(entries):
                return False
            await self._save(profile, remaining)
        return True


class VersionService:
    """
    Previews and undoes recorded changes.

    Example:
        >>> service = VersionService(store, ChangeLog(store), event_bus)
        >>> change = (await service.entries())[0]
        >>> print(service.preview(change).description)
        >>> result = await service.revert(change)
    """

    def __init__(
        self,
        store: DocumentStore,
        change_log: ChangeLog,
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.change_log = change_log
        self.event_bus = event_bus

    async def record(self, change: ChangeRecord) -> ChangeRecord:
        return await self.change_log.append(change)

    async def entries(self) -> list[ChangeRecord]:
        return await self.change_log.entries()

    def preview(self, change: ChangeRecord) -> RevertPreview:
        """Describe what reverting ``change`` would do."""
        title = change.title or change.document_id
        if change.action == "created":
            return RevertPreview(
                action="Delete File",
                description=f'This will delete the file "{title}" completely.',
                warning="This action cannot be undone. The file will be permanently deleted.",
            )

        old_length = len(change.old_content_text)
        new_length = len(change.new_content_text or "")
        size_diff = new_length - old_length
        if size_diff > 0:
            warning = f"You will lose {size_diff} characters of content added by auto-organization."
        else:
            warning = f"This will restore {abs(size_diff)} characters that were removed."
        return RevertPreview(
            action="Restore Previous Version",
            description=f'This will restore "{title}" to its previous state.',
            warning=warning,
        )

    async def revert(self, change: ChangeRecord) -> RevertResult:
        """
        Undo a recorded change.

        Creations are undone by soft-deleting the document; updates by
        restoring the captured content. On success the entry leaves the
        history; on failure it stays and the error is returned.
        """
        if not await self.change_log.contains(change):
            logger.warning("revert_entry_missing", document_id=change.document_id)
            return RevertResult(
                success=False,
                error="This change is no longer in the history",
                document_id=change.document_id,
                title=change.title,
            )

        deleted = change.action == "created"
        if deleted:
            patch = {"is_deleted": True}
        else:
            patch = {"content": change.old_content, "content_text": change.old_content_text}

        try:
            document = await self.store.update(change.document_id, patch)
        except Exception as e:
            failure = RevertFailure(change.document_id, str(e))
            logger.error(
                "revert_failed",
                document_id=change.document_id,
                action=change.action,
                error=failure.message,
                error_type=type(e).__name__,
            )
            return RevertResult(
                success=False,
                error=failure.message,
                document_id=change.document_id,
                title=change.title,
            )

        await self.change_log.remove(change)
        logger.info("change_reverted", document_id=change.document_id, action=change.action, deleted=deleted)

        if self.event_bus is not None:
            await self.event_bus.publish(
                DocumentReverted(
                    document=DocumentRef(id=document.id, title=document.title, path=change.path),
                    deleted=deleted,
                )
            )

        return RevertResult(success=True, document_id=document.id, title=document.title)
