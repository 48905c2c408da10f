"""Decides when a document's organization pipeline runs.

Two signals can start a run: the user going idle after editing, and the
"double return" gesture (two empty blocks after a non-empty one). Each
document has its own IDLE -> SCHEDULED -> RUNNING -> IDLE state, so a slow
run on one document never blocks another.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from notesorter.utils.logging import get_logger


logger = get_logger(__name__)

RunCallback = Callable[[str], Awaitable[object]]


class RunState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


@dataclass
class _DocumentTriggerState:
    state: RunState = RunState.IDLE
    timer: Optional[asyncio.TimerHandle] = None
    task: Optional[asyncio.Task] = None
    last_attempt: Optional[float] = None


def is_double_return(block_texts: Sequence[str], cursor_index: int) -> bool:
    """
    Check the "double return" gesture at the cursor.

    True when the cursor block and the block before it are both empty and
    the block two before the cursor has text.

    Args:
        block_texts: Visible text of every block, in order
        cursor_index: Index of the block holding the cursor

    Example:
        >>> is_double_return(["Buy milk", "", ""], 2)
        True
    """
    if cursor_index < 2 or cursor_index >= len(block_texts):
        return False
    current = block_texts[cursor_index].strip()
    previous = block_texts[cursor_index - 1].strip()
    before_previous = block_texts[cursor_index - 2].strip()
    return not current and not previous and bool(before_previous)


class TriggerManager:
    """
    Per-document scheduler with debounce and single-flight guarding.

    All state checks and transitions in ``try_run`` happen synchronously on
    the event loop, so two triggers for the same document can never both
    start a run.

    Example:
        >>> manager = TriggerManager(organizer.organize_document, idle_timeout=30)
        >>> manager.on_content_change(doc_id)   # restarts the idle timer
        >>> manager.on_keystroke(doc_id, ["Buy milk", "", ""], 2)  # runs now
    """

    def __init__(
        self,
        run: RunCallback,
        idle_timeout: float = 30.0,
        debounce: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            run: Coroutine function taking a document id (the pipeline)
            idle_timeout: Seconds without edits before an idle run
            debounce: Minimum seconds between accepted attempts per document
            clock: Monotonic time source (injectable for tests)
        """
        self._run = run
        self.idle_timeout = idle_timeout
        self.debounce = debounce
        self._clock = clock
        self._documents: dict[str, _DocumentTriggerState] = {}

    def _state_for(self, document_id: str) -> _DocumentTriggerState:
        if document_id not in self._documents:
            self._documents[document_id] = _DocumentTriggerState()
        return self._documents[document_id]

    def state(self, document_id: str) -> RunState:
        return self._state_for(document_id).state

    def is_running(self, document_id: str) -> bool:
        return self.state(document_id) == RunState.RUNNING

    def on_content_change(self, document_id: str) -> None:
        """Restart the idle timer for a document after an edit."""
        entry = self._state_for(document_id)
        if entry.timer is not None:
            entry.timer.cancel()

        loop = asyncio.get_running_loop()
        entry.timer = loop.call_later(self.idle_timeout, self._on_idle, document_id)
        if entry.state == RunState.IDLE:
            entry.state = RunState.SCHEDULED

    def on_keystroke(
        self,
        document_id: str,
        block_texts: Sequence[str],
        cursor_index: int,
    ) -> Optional[asyncio.Task]:
        """Attempt an immediate run if the keystroke completed a double return."""
        if not is_double_return(block_texts, cursor_index):
            return None
        logger.debug("double_return_detected", document_id=document_id, cursor_index=cursor_index)
        return self.try_run(document_id, reason="double_return")

    def _on_idle(self, document_id: str) -> None:
        entry = self._state_for(document_id)
        entry.timer = None
        if entry.state == RunState.SCHEDULED:
            entry.state = RunState.IDLE
        self.try_run(document_id, reason="idle")

    def try_run(self, document_id: str, reason: str = "manual") -> Optional[asyncio.Task]:
        """
        Start a pipeline run unless one is active or the debounce window is open.

        Dropped attempts are not queued; the next edit or gesture will
        trigger again.

        Returns:
            The task running the pipeline, or None if the attempt was dropped
        """
        entry = self._state_for(document_id)
        now = self._clock()

        if entry.state == RunState.RUNNING:
            logger.debug("trigger_dropped", document_id=document_id, reason=reason, cause="running")
            return None

        if entry.last_attempt is not None and now - entry.last_attempt < self.debounce:
            logger.debug("trigger_dropped", document_id=document_id, reason=reason, cause="debounce")
            return None

        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None

        entry.last_attempt = now
        entry.state = RunState.RUNNING
        entry.task = asyncio.get_running_loop().create_task(
            self._execute(document_id, reason),
            name=f"organize-{document_id}",
        )
        logger.info("organization_triggered", document_id=document_id, reason=reason)
        return entry.task

    async def _execute(self, document_id: str, reason: str) -> None:
        entry = self._state_for(document_id)
        start = self._clock()
        try:
            await self._run(document_id)
            logger.info(
                "organization_run_completed",
                document_id=document_id,
                reason=reason,
                elapsed_seconds=round(self._clock() - start, 3),
            )
        except Exception as e:
            logger.error(
                "organization_run_failed",
                document_id=document_id,
                reason=reason,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            # Edits made during the run re-armed the idle timer
            entry.state = RunState.SCHEDULED if entry.timer is not None else RunState.IDLE
            entry.task = None

    def close(self, document_id: str) -> None:
        """Stop watching a document. An in-flight run finishes in the background."""
        entry = self._documents.get(document_id)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
        if entry.state == RunState.SCHEDULED:
            entry.state = RunState.IDLE

    def shutdown(self) -> None:
        """Cancel every pending idle timer."""
        for document_id in list(self._documents):
            self.close(document_id)

    async def wait(self, document_id: str) -> None:
        """Wait for the document's in-flight run, if any, to finish."""
        entry = self._documents.get(document_id)
        if entry is not None and entry.task is not None:
            await asyncio.shield(entry.task)
