"""Unit tests for TriggerManager and the double-return heuristic."""

import asyncio

import pytest

from notesorter.organization.triggers import RunState, TriggerManager, is_double_return


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingRun:
    """Pipeline stand-in that records calls and can be held open."""

    def __init__(self, fail: bool = False):
        self.calls: list[str] = []
        self.release = asyncio.Event()
        self.release.set()
        self.fail = fail

    async def __call__(self, document_id: str):
        self.calls.append(document_id)
        await self.release.wait()
        if self.fail:
            raise RuntimeError("classifier exploded")


class TestIsDoubleReturn:
    """Test the double-return gesture detection."""

    def test_two_empty_blocks_after_text(self):
        assert is_double_return(["Buy milk", "", ""], 2) is True

    def test_whitespace_counts_as_empty(self):
        assert is_double_return(["Buy milk", "  ", "\t"], 2) is True

    def test_single_empty_block_is_not_enough(self):
        assert is_double_return(["Buy milk", ""], 1) is False

    def test_three_empty_blocks_do_not_retrigger(self):
        """The block two before the cursor must have text."""
        assert is_double_return(["Buy milk", "", "", ""], 3) is False

    def test_cursor_on_text_block(self):
        assert is_double_return(["Buy milk", "", "Call"], 2) is False

    def test_cursor_out_of_range(self):
        assert is_double_return(["a", "", ""], 5) is False
        assert is_double_return(["", ""], 1) is False


class TestTryRun:
    """Test debounce and single-flight behaviour."""

    @pytest.mark.asyncio
    async def test_runs_pipeline_and_returns_to_idle(self):
        run = RecordingRun()
        manager = TriggerManager(run, clock=FakeClock())

        task = manager.try_run("scratch", reason="manual")
        assert manager.state("scratch") == RunState.RUNNING
        await task

        assert run.calls == ["scratch"]
        assert manager.state("scratch") == RunState.IDLE

    @pytest.mark.asyncio
    async def test_second_attempt_while_running_is_dropped(self):
        run = RecordingRun()
        run.release.clear()
        clock = FakeClock()
        manager = TriggerManager(run, clock=clock)

        task = manager.try_run("scratch")
        clock.advance(5)
        assert manager.try_run("scratch") is None

        run.release.set()
        await task
        assert run.calls == ["scratch"]

    @pytest.mark.asyncio
    async def test_attempt_within_debounce_window_is_dropped(self):
        run = RecordingRun()
        clock = FakeClock()
        manager = TriggerManager(run, debounce=1.0, clock=clock)

        await manager.try_run("scratch")
        clock.advance(0.5)
        assert manager.try_run("scratch") is None

        clock.advance(0.6)
        task = manager.try_run("scratch")
        assert task is not None
        await task
        assert run.calls == ["scratch", "scratch"]

    @pytest.mark.asyncio
    async def test_documents_run_independently(self):
        """A run on one document does not block another."""
        run = RecordingRun()
        run.release.clear()
        manager = TriggerManager(run, clock=FakeClock())

        first = manager.try_run("scratch")
        second = manager.try_run("journal")

        assert first is not None and second is not None
        run.release.set()
        await asyncio.gather(first, second)
        assert sorted(run.calls) == ["journal", "scratch"]

    @pytest.mark.asyncio
    async def test_failed_run_returns_to_idle(self):
        """Fail-open: a pipeline error never wedges the document."""
        run = RecordingRun(fail=True)
        clock = FakeClock()
        manager = TriggerManager(run, clock=clock)

        await manager.try_run("scratch")
        assert manager.state("scratch") == RunState.IDLE

        clock.advance(2)
        retry = manager.try_run("scratch")
        assert retry is not None
        await retry
        assert run.calls == ["scratch", "scratch"]


class TestIdleTimer:
    """Test idle-timeout scheduling."""

    @pytest.mark.asyncio
    async def test_idle_timeout_triggers_run(self):
        run = RecordingRun()
        manager = TriggerManager(run, idle_timeout=0.01)

        manager.on_content_change("scratch")
        assert manager.state("scratch") == RunState.SCHEDULED

        await asyncio.sleep(0.05)
        await manager.wait("scratch")
        assert run.calls == ["scratch"]
        assert manager.state("scratch") == RunState.IDLE

    @pytest.mark.asyncio
    async def test_edits_reset_the_timer(self):
        run = RecordingRun()
        manager = TriggerManager(run, idle_timeout=0.2)

        manager.on_content_change("scratch")
        await asyncio.sleep(0.12)
        manager.on_content_change("scratch")
        await asyncio.sleep(0.12)
        assert run.calls == []

        await asyncio.sleep(0.2)
        await manager.wait("scratch")
        assert run.calls == ["scratch"]

    @pytest.mark.asyncio
    async def test_edit_during_run_leaves_document_scheduled(self):
        run = RecordingRun()
        run.release.clear()
        manager = TriggerManager(run, idle_timeout=60, clock=FakeClock())

        task = manager.try_run("scratch")
        manager.on_content_change("scratch")
        assert manager.state("scratch") == RunState.RUNNING

        run.release.set()
        await task

        assert manager.state("scratch") == RunState.SCHEDULED
        manager.close("scratch")
        assert manager.state("scratch") == RunState.IDLE

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self):
        run = RecordingRun()
        manager = TriggerManager(run, idle_timeout=0.01)

        manager.on_content_change("scratch")
        manager.close("scratch")
        await asyncio.sleep(0.03)

        assert run.calls == []
        assert manager.state("scratch") == RunState.IDLE


class TestOnKeystroke:
    """Test the immediate trigger path."""

    @pytest.mark.asyncio
    async def test_double_return_runs_immediately(self):
        run = RecordingRun()
        manager = TriggerManager(run, idle_timeout=60, clock=FakeClock())

        task = manager.on_keystroke("scratch", ["Buy milk", "", ""], 2)

        assert task is not None
        await task
        assert run.calls == ["scratch"]

    @pytest.mark.asyncio
    async def test_plain_keystroke_does_nothing(self):
        run = RecordingRun()
        manager = TriggerManager(run, clock=FakeClock())

        assert manager.on_keystroke("scratch", ["Buy mil"], 0) is None
        assert run.calls == []
